"""
API Services Layer.

Workflow commands and queries used by the API routes. Commands take an
explicit SessionContext, run in one transaction and return the events the
notification dispatcher publishes after commit.
"""

from api.services.candidates import (
    get_candidate,
    list_candidates,
    get_status_history,
    change_status,
    shortlist_candidate,
    reassign_interviewer,
)

from api.services.interviews import (
    schedule_interview,
    confirm_interest,
    list_interviews,
    get_interviewer_dashboard,
)

from api.services.evaluations import (
    submit_feedback,
    get_feedback,
)

from api.services.offers import (
    send_offer,
    get_offer,
    list_pending_offers,
    approve_by_manager,
    reject_by_manager,
    acknowledge,
    reject_by_interviewer,
    resubmit,
    list_hr_managers,
)

from api.services.applications import create_application

from api.services.notifications import (
    publish,
    list_notifications,
    mark_read,
    mark_all_read,
)

from api.services.webhooks import (
    relay_email,
    list_configs,
    upsert_config,
    list_email_log,
)

from api.services.users import (
    list_roles,
    add_role,
    toggle_role,
    list_pending_users,
    describe_context,
)

__all__ = [
    # Candidates
    "get_candidate",
    "list_candidates",
    "get_status_history",
    "change_status",
    "shortlist_candidate",
    "reassign_interviewer",
    # Interviews
    "schedule_interview",
    "confirm_interest",
    "list_interviews",
    "get_interviewer_dashboard",
    # Feedback
    "submit_feedback",
    "get_feedback",
    # Offers
    "send_offer",
    "get_offer",
    "list_pending_offers",
    "approve_by_manager",
    "reject_by_manager",
    "acknowledge",
    "reject_by_interviewer",
    "resubmit",
    "list_hr_managers",
    # Applications
    "create_application",
    # Notifications
    "publish",
    "list_notifications",
    "mark_read",
    "mark_all_read",
    # Webhooks
    "relay_email",
    "list_configs",
    "upsert_config",
    "list_email_log",
    # Users
    "list_roles",
    "add_role",
    "toggle_role",
    "list_pending_users",
    "describe_context",
]
