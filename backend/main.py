"""
SmartPark Reservation System - Application Principale
Point d'entrée FastAPI avec toutes les configurations.
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import logging
import sys

# Import routers
from routers import (
    parking_router,
    reservations_router,
    admin_router,
    payment_router,
)

from config import get_settings
from database import create_ledger
from database.seed import build_demo_catalog
from models.reservation import ErrorKind
from services.availability import AvailabilityIndex
from services.payment_service import PaymentService
from services.pricing import PricingEngine
from services.reservation_service import ReservationAllocator
from utils.helpers import utcnow
from utils.scheduler import start_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestionnaire du cycle de vie de l'application.
    Construit le stockage, le cœur de réservation et le scheduler.
    """
    # ===== DÉMARRAGE =====
    logger.info("🚀 Démarrage de SmartPark...")
    settings = get_settings()

    try:
        logger.info(f"Stockage: {settings.storage_backend}")
        ledger = create_ledger(settings)

        # Les tokens Firebase restent vérifiés avec le stockage mémoire
        if settings.storage_backend.lower() == "memory" and settings.firebase_project_id:
            from database.firebase_db import init_firebase
            init_firebase()

        if settings.seed_demo_data:
            locations, spots = build_demo_catalog()
            created = await ledger.seed_catalog(locations, spots)
            logger.info(f"✅ Catalogue prêt ({created} places créées)")

        allocator = ReservationAllocator(
            ledger,
            pricing=PricingEngine(settings.currency),
            index=AvailabilityIndex(),
            timeout_seconds=settings.allocation_timeout_seconds,
            max_reservation_hours=settings.max_reservation_hours,
        )

        app.state.ledger = ledger
        app.state.allocator = allocator
        app.state.payment_service = PaymentService(
            ledger,
            currency=settings.currency,
            timeout_seconds=settings.allocation_timeout_seconds,
        )
        app.state.scheduler = None

        if settings.enable_scheduler:
            logger.info("Démarrage du scheduler...")
            app.state.scheduler = start_scheduler(allocator, settings.completion_sweep_seconds)
            logger.info("✅ Scheduler démarré")

        logger.info("🎉 SmartPark est prêt!")

    except Exception as e:
        logger.error(f"❌ Erreur de démarrage: {e}")
        raise

    yield  # L'application s'exécute ici

    # ===== ARRÊT =====
    logger.info("🛑 Arrêt de SmartPark...")

    if app.state.scheduler is not None:
        app.state.scheduler.stop()
        logger.info("✅ Scheduler arrêté")

    logger.info("👋 Arrêt de SmartPark terminé")


# Créer l'application FastAPI
app = FastAPI(
    title="SmartPark Reservation System",
    description="""
    ## Système de Réservation de Parking

    * **Sites et Places**: Consultation des sites, zones et places libres
    * **Réservations**: Place précise ou première place libre d'une zone, sans double réservation
    * **Paiements**: Confirmation par la passerelle, activation de la réservation
    * **Administration**: Annulations, maintenance des places, statistiques

    ### Sécurité

    * Endpoints utilisateurs: Token Firebase (Bearer authentication)
    * Callbacks de paiement: Clé API dans le header X-Gateway-Key
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Récupérer les settings
settings = get_settings()

# Configurer CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== GESTIONNAIRES D'EXCEPTIONS ====================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Gère les erreurs de validation Pydantic."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "errorKind": ErrorKind.INVALID_REQUEST.value,
            "detail": "Erreur de validation",
            "errors": errors
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Gère les exceptions inattendues."""
    logger.error(f"Erreur inattendue: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Une erreur inattendue s'est produite"
        }
    )


# ==================== INCLUSION DES ROUTERS ====================

app.include_router(parking_router)
app.include_router(reservations_router)
app.include_router(admin_router)
app.include_router(payment_router)


# ==================== ENDPOINTS RACINE ====================

@app.get(
    "/",
    tags=["Health"],
    summary="Endpoint Racine",
    description="Retourne les informations de base de l'API."
)
async def root():
    """
    Endpoint racine.
    Retourne les informations de base et le statut de l'API.
    """
    return {
        "name": "SmartPark Reservation System",
        "version": "1.0.0",
        "status": "operational",
        "documentation": "/docs",
        "timestamp": utcnow().isoformat()
    }


@app.get(
    "/health",
    tags=["Health"],
    summary="Vérification de Santé",
    description="Retourne l'état de santé du système."
)
async def health_check(request: Request):
    """
    Endpoint de vérification de santé.
    Utilisé pour le monitoring et les health checks des load balancers.
    """
    scheduler = getattr(request.app.state, "scheduler", None)

    return {
        "status": "healthy",
        "services": {
            "storage": get_settings().storage_backend,
            "scheduler": "running" if scheduler and scheduler.is_running() else "stopped",
        },
        "timestamp": utcnow().isoformat()
    }


@app.get(
    "/api/v1/info",
    tags=["Health"],
    summary="Informations API",
    description="Retourne les informations détaillées de l'API."
)
async def api_info():
    """
    Informations détaillées de l'API.
    Retourne la version, les endpoints et les détails de configuration.
    """
    return {
        "name": "SmartPark Reservation System API",
        "version": "1.0.0",
        "endpoints": {
            "parking": "/parking",
            "reservations": "/reservations",
            "payments": "/api/v1/payments",
            "admin": "/admin"
        },
        "currency": get_settings().currency,
        "api_key": "Utiliser le header X-Gateway-Key pour /api/v1/payments/confirm",
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc"
        }
    }


# ==================== POINT D'ENTRÉE PRINCIPAL ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info"
    )
