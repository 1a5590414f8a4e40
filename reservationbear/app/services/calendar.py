"""iCalendar (RFC 5545) rendering of a reservation as a single VEVENT."""

from datetime import datetime, timezone

from reservationbear.app.models import Reservation


PRODID = "-//Reservation Bear//Reservations//EN"
UID_DOMAIN = "reservationbear"
MAX_LINE_OCTETS = 75


def _format_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _escape_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str) -> list[str]:
    # Continuation lines start with a space, which counts towards their length.
    parts: list[str] = []
    current = ""
    for char in line:
        if len((current + char).encode("utf-8")) > MAX_LINE_OCTETS:
            parts.append(current)
            current = " "
        current += char
    parts.append(current)
    return parts


def build_reservation_calendar(
    reservation: Reservation,
    *,
    dtstamp: datetime | None = None,
) -> bytes:
    tables = len(reservation.table_ids)
    summary = f"Table reservation for {reservation.user_name}"
    description = (
        f"Reservation {reservation.id} for {reservation.user_name}, "
        f"{tables} table{'s' if tables != 1 else ''}"
    )
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{reservation.id}@{UID_DOMAIN}",
        f"DTSTAMP:{_format_utc(dtstamp or datetime.now(timezone.utc))}",
        f"DTSTART:{_format_utc(reservation.reservation_from)}",
        f"DTEND:{_format_utc(reservation.reservation_to)}",
        f"SUMMARY:{_escape_text(summary)}",
        f"DESCRIPTION:{_escape_text(description)}",
        f"STATUS:{'CONFIRMED' if reservation.confirmed else 'TENTATIVE'}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    folded = [part for line in lines for part in _fold(line)]
    return ("\r\n".join(folded) + "\r\n").encode("utf-8")
