"""SEO readiness scoring and a paginated site leaderboard."""

__version__ = "1.0.0"
