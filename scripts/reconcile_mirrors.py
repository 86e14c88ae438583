#!/usr/bin/env python3
"""
Mirror Repair Script

Rebuilds Opportunity.applicants and Student.applications from the
applications collection. With an id only that opportunity's applicants
are rebuilt. Run after a PARTIAL_FAILURE error.

Usage:
    python scripts/reconcile_mirrors.py
    python scripts/reconcile_mirrors.py <opportunity_id>
"""
import logging
import sys
sys.path.insert(0, '.')

from app.core.config import get_settings
from app.services.application_service import get_application_service


def main():
    logging.basicConfig(level=get_settings().log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    service = get_application_service()

    if len(sys.argv) > 1:
        applicants = service.reconcile_opportunity(sys.argv[1])
        print(f"✅ Opportunity {sys.argv[1]}: {len(applicants)} applicants")
    else:
        counts = service.reconcile_all()
        print(f"✅ Rebuilt applicant lists for {counts['opportunities']} opportunities "
              f"and application lists for {counts['students']} students")


if __name__ == "__main__":
    main()
