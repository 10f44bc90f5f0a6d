DEFAULT_BADGES = [
    {
        "name": "First Steps",
        "description": "Complete your first quiz",
        "icon": "🎯",
        "category": "quiz_completion",
        "tier": "bronze",
        "rarity": "common",
        "points": 10,
        "criteria": {"quiz_count": 1},
    },
    {
        "name": "Quiz Explorer",
        "description": "Complete 5 quizzes",
        "icon": "🧭",
        "category": "quiz_completion",
        "tier": "silver",
        "rarity": "uncommon",
        "points": 25,
        "criteria": {"quiz_count": 5},
    },
    {
        "name": "Quiz Master",
        "description": "Complete 25 quizzes",
        "icon": "👑",
        "category": "quiz_completion",
        "tier": "gold",
        "rarity": "rare",
        "points": 100,
        "criteria": {"quiz_count": 25},
    },
    {
        "name": "High Scorer",
        "description": "Score 90% or higher on a quiz",
        "icon": "⭐",
        "category": "high_achiever",
        "tier": "bronze",
        "rarity": "common",
        "points": 15,
        "criteria": {"min_score": 90},
    },
    {
        "name": "Academic Excellence",
        "description": "Score 95% or higher and complete at least 3 quizzes",
        "icon": "🌟",
        "category": "high_achiever",
        "tier": "silver",
        "rarity": "uncommon",
        "points": 50,
        "criteria": {"min_score": 95, "quiz_count": 3},
    },
    {
        "name": "Perfect Score",
        "description": "Get 100% on any quiz",
        "icon": "💯",
        "category": "perfectionist",
        "tier": "silver",
        "rarity": "uncommon",
        "points": 30,
        "criteria": {"perfect_score": True},
    },
    {
        "name": "Flawless Streak",
        "description": "Get 100% on 3 consecutive quizzes",
        "icon": "🔥",
        "category": "perfectionist",
        "tier": "gold",
        "rarity": "rare",
        "points": 75,
        "criteria": {"consecutive_perfect": 3},
    },
    {
        "name": "Lightning Fast",
        "description": "Complete a quiz in under 2 minutes",
        "icon": "⚡",
        "category": "speed_demon",
        "tier": "bronze",
        "rarity": "common",
        "points": 20,
        "criteria": {"max_time": 120},
    },
    {
        "name": "Speed Racer",
        "description": "Complete a quiz in under 1 minute",
        "icon": "🏎️",
        "category": "speed_demon",
        "tier": "gold",
        "rarity": "rare",
        "points": 60,
        "criteria": {"max_time": 60},
    },
    {
        "name": "On Fire",
        "description": "Pass 5 quizzes in a row",
        "icon": "🔥",
        "category": "streak_master",
        "tier": "silver",
        "rarity": "uncommon",
        "points": 40,
        "criteria": {"streak_count": 5},
    },
    {
        "name": "Unstoppable",
        "description": "Pass 10 quizzes in a row",
        "icon": "🚀",
        "category": "streak_master",
        "tier": "gold",
        "rarity": "rare",
        "points": 80,
        "criteria": {"streak_count": 10},
    },
    {
        "name": "Safety Explorer",
        "description": "Complete quizzes from 3 different modules",
        "icon": "🗺️",
        "category": "explorer",
        "tier": "silver",
        "rarity": "uncommon",
        "points": 35,
        "criteria": {"module_count": 3},
    },
    {
        # Criteria-less: granted by an administrator, never automatically.
        "name": "Early Adopter",
        "description": "One of the first students to use the platform",
        "icon": "🌟",
        "category": "special",
        "tier": "platinum",
        "rarity": "legendary",
        "points": 100,
        "criteria": {},
    },
]
