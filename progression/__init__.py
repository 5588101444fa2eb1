"""
Progression engine for a children's storytelling platform

Tracks each user's points, level, daily writing streak, one-time
achievements and leaderboard standing. Embedding processes talk to it
through ``progression.services.ProgressionManager``.
"""
