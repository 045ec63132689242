"""Prompts sent to the Completion Service."""

GOAL_SYSTEM_PROMPT = (
    "You are a scheduling goal parser. Extract structured information "
    "from natural language goals."
)

GOAL_EXTRACTION_PROMPT = """Parse this scheduling goal and extract structured information:

Goal: "{description}"

Return ONLY valid JSON in this format:
{{
    "goal_type": "exercise|hobby|learning|social|work|custom",
    "custom_type": "Custom type if goal_type is 'custom'",
    "frequency": "daily|weekly|monthly|custom",
    "custom_frequency": 5,
    "duration_minutes": 60,
    "preferred_times": [
        {{
            "day_of_week": "monday|tuesday|wednesday|thursday|friday|saturday|sunday|null",
            "start_time": "09:00",
            "end_time": "17:00"
        }}
    ]
}}

Rules:
- Times are 24h wall-clock "HH:MM"
- Use null for day_of_week when any day works
- Use an empty preferred_times list if the goal states no time preference"""

SUGGESTION_SYSTEM_PROMPT = (
    "You are a smart scheduling assistant. Analyze the user's goals and "
    "existing calendar to suggest optimal time slots. Return suggestions in "
    "JSON format."
)

SUGGESTION_PROMPT = """Given the following information, suggest {count} optimal time slots for the user's goal:

Goal: {goal}
Duration: {duration} minutes
Current time: {now}
Existing events: {events}
Time preferences: {preferences}

Please suggest specific time slots between {now} and {horizon} that don't conflict with existing events and match the user's preferences.

Return the response in this exact JSON format:
{{
    "suggestions": [
        {{
            "title": "Event title",
            "description": "Detailed description",
            "start_time": "2025-01-20T10:00:00Z",
            "end_time": "2025-01-20T11:00:00Z",
            "confidence_score": 0.85,
            "reasoning": "Why this time slot is optimal"
        }}
    ]
}}"""
