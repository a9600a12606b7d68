"""
Database queries - re-exported for `from foodpassport.db import queries`.

Module organization:
- meals.py: Meal event history
- achievements.py: Stamps held by users
- aggregates.py: Per-user counters and distinct sets
- challenges.py: Dish challenges
"""

# Meal operations
from foodpassport.db.queries.meals import (
    save_meal_event,
    get_recent_meals,
    get_all_meals,
    has_meal_before,
)

# Stamp operations
from foodpassport.db.queries.achievements import (
    create_user_achievement_if_absent,
    get_user_achievements,
    delete_user_achievements,
)

# Aggregate operations
from foodpassport.db.queries.aggregates import (
    get_user_aggregate,
    insert_user_aggregate,
    update_user_aggregate,
    delete_user_aggregate,
)

# Challenge operations
from foodpassport.db.queries.challenges import (
    save_challenge,
    get_active_challenges,
    complete_challenge,
)

__all__ = [
    "save_meal_event",
    "get_recent_meals",
    "get_all_meals",
    "has_meal_before",
    "create_user_achievement_if_absent",
    "get_user_achievements",
    "delete_user_achievements",
    "get_user_aggregate",
    "insert_user_aggregate",
    "update_user_aggregate",
    "delete_user_aggregate",
    "save_challenge",
    "get_active_challenges",
    "complete_challenge",
]
