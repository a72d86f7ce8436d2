"""Application services."""

from .reconciliation import (
    LiveReconciliationController,
    ReconciliationState,
    configure_controller,
    get_controller,
)
from .sessions import ViewSession
from .vacancies import VacancyNotFound, VacancyService, configure_vacancy_service, get_vacancy_service

__all__ = [
    "LiveReconciliationController",
    "ReconciliationState",
    "VacancyNotFound",
    "VacancyService",
    "ViewSession",
    "configure_controller",
    "configure_vacancy_service",
    "get_controller",
    "get_vacancy_service",
]
