"""
Placement Hub
Opportunity board and application tracker for students and companies.

Architecture:
- MongoDB: students, companies, opportunities, applications
- FastAPI: REST API under /api with JWT auth
- Application lifecycle engine keeps mirrors and notifications in step
"""

__version__ = "1.0.0"
