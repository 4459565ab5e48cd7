"""Service layer"""

from habit_journey.services.gamification_service import GamificationService

__all__ = ["GamificationService"]
