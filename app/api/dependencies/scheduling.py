# app/api/dependencies/scheduling.py
from app.services.meeting_series_editor import MeetingSeriesEditor


def get_series_editor() -> MeetingSeriesEditor:
    """
    Dependency providing a MeetingSeriesEditor bound to the configured
    series time zone and expansion cap.
    """
    return MeetingSeriesEditor()
