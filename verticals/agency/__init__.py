"""Agency vertical — client project and task tracker.

Pieces, bottom-up:
- SQLAlchemy models for clients, team users, projects, services, tasks
- Classification engine (overdue, stale, blocked, rollups, risk badges)
- Service templates that expand into dated tasks
- WhatsApp follow-up messages and links
- Tracker service and FastAPI router
"""
