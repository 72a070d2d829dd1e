"""Router package - collects all API routers and registers them on the FastAPI app."""

from fastapi import FastAPI

from engage.routers import (
    health,
    earn,
    quiz,
    campaigns,
    wallet,
    validator,
    admin,
)


def register_all_routers(app: FastAPI):
    app.include_router(health.router)
    app.include_router(earn.router)
    app.include_router(quiz.router)
    app.include_router(campaigns.router)
    app.include_router(wallet.router)
    app.include_router(validator.router)
    app.include_router(admin.router)
