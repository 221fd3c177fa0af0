"""
Script pour donner le rôle administrateur à un compte Firebase existant.
Le rôle est porté par le custom claim ``role`` lu à chaque requête.

Usage:
    cd backend
    python grant_admin.py operator@smartpark.id
    python grant_admin.py operator@smartpark.id --revoke
"""

import argparse
import logging
import sys

import firebase_admin
from firebase_admin import auth

from database.firebase_db import init_firebase
from models.user import UserRole

logger = logging.getLogger(__name__)


def set_role(email: str, role: UserRole) -> str:
    """
    Définit le custom claim ``role`` d'un utilisateur.

    Les autres claims de l'utilisateur sont conservés. Le nouveau rôle est
    visible dès le prochain token émis (reconnexion ou rafraîchissement).

    Returns:
        str: UID de l'utilisateur
    """
    if not firebase_admin._apps:
        init_firebase()

    user = auth.get_user_by_email(email)
    claims = dict(user.custom_claims or {})
    claims["role"] = role.value
    auth.set_custom_user_claims(user.uid, claims)

    logger.info(f"Rôle {role.value} défini pour {email} ({user.uid})")
    return user.uid


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Gérer le rôle admin SmartPark")
    parser.add_argument("email", help="Email du compte Firebase")
    parser.add_argument("--revoke", action="store_true", help="Revenir au rôle utilisateur")
    args = parser.parse_args(argv)

    role = UserRole.USER if args.revoke else UserRole.ADMIN
    try:
        uid = set_role(args.email, role)
    except auth.UserNotFoundError:
        print(f"❌ Aucun compte Firebase pour {args.email}")
        return 1

    print(f"✅ {args.email} ({uid}) a maintenant le rôle {role.value}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
