"""Calendar invite payloads attached to interview emails."""

from datetime import date, datetime, time, timedelta
from typing import Optional, List, Dict, Any
import logging

from core.utils.datetime import combine_utc

logger = logging.getLogger(__name__)

INTERVIEW_DURATION = timedelta(hours=1)


class Attendee:
    """A required invitee."""

    def __init__(self, email: str, name: Optional[str] = None):
        self.email = email
        self.name = name or email

    def to_dict(self) -> Dict[str, Any]:
        return {
            'emailAddress': {'address': self.email, 'name': self.name},
            'type': 'required',
        }


class CalendarEvent:
    """Represents a calendar event in the shape the mail automation expects."""

    def __init__(
        self,
        subject: str,
        start_time: datetime,
        end_time: datetime,
        body: Optional[str] = None,
        location: Optional[str] = None,
        attendees: Optional[List[Attendee]] = None,
        online_meeting_url: Optional[str] = None,
    ):
        """
        Initialize calendar event.

        Args:
            subject: Event title
            start_time: Event start time (aware)
            end_time: Event end time (aware)
            body: Plain text description
            location: Physical location or room
            attendees: Required attendees
            online_meeting_url: Video meeting link, if any
        """
        self.subject = subject
        self.start_time = start_time
        self.end_time = end_time
        self.body = body
        self.location = location
        self.attendees = attendees or []
        self.online_meeting_url = online_meeting_url

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary format."""
        return {
            'subject': self.subject,
            'start': self.start_time.isoformat(),
            'end': self.end_time.isoformat(),
            'location': self.location or '',
            'body': self.body or '',
            'attendees': [attendee.to_dict() for attendee in self.attendees],
            'isOnlineMeeting': bool(self.online_meeting_url),
            'onlineMeetingUrl': self.online_meeting_url,
        }


def build_interview_invite(
    candidate_name: str,
    candidate_email: str,
    position: str,
    interviewer_email: str,
    interviewer_name: Optional[str],
    interview_date: date,
    interview_time: time,
    location: Optional[str] = None,
    meeting_link: Optional[str] = None,
    notes: Optional[str] = None,
) -> CalendarEvent:
    """
    One-hour interview invite for the interviewer and the candidate.

    Returns:
        CalendarEvent; call ``to_dict()`` for the email payload
    """
    start = combine_utc(interview_date, interview_time)
    body = (
        f"Interview scheduled with {candidate_name}\n\n"
        f"Position: {position}\n"
        f"Meeting Link: {meeting_link or 'N/A'}\n\n"
        f"Notes: {notes or 'No additional notes'}"
    )
    return CalendarEvent(
        subject=f"Interview - {candidate_name} for {position}",
        start_time=start,
        end_time=start + INTERVIEW_DURATION,
        body=body,
        location=location,
        attendees=[
            Attendee(interviewer_email, interviewer_name),
            Attendee(candidate_email, candidate_name),
        ],
        online_meeting_url=meeting_link,
    )
