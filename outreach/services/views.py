"""
Read-only aggregate views, built as SQLAlchemy subqueries so the filter
translator can treat them exactly like tables.

Counting rules:
- total_confirmations = number of contact rows (every contact record counts)
- total_attendees     = contact rows with attended = true
- total_first_timers  = contact rows with is_first_time = true
"""

from __future__ import annotations

from sqlalchemy import String, and_, case, func, select, true
from sqlalchemy.sql.expression import FromClause

from ..models.contact import Contact
from ..models.event import Event, EventMemberTarget
from ..models.member import Member


def _flag_count(column):
    return func.sum(case((column == true(), 1), else_=0))


def contacts_table() -> FromClause:
    return Contact.__table__


def confirmations_view() -> FromClause:
    """Legacy confirmation shape over the contacts table."""
    c = Contact.__table__
    return (
        select(
            c.c.id,
            c.c.event_id,
            c.c.contacted_by_member_id.label("confirmed_by_member_id"),
            c.c.first_name,
            c.c.last_name,
            c.c.contact_number,
            c.c.notes,
            c.c.attended,
            c.c.is_first_time,
            c.c.confirmed_at,
            c.c.transport_arranged_at,
            c.c.created_at,
            c.c.updated_at,
        )
        .subquery("confirmations")
    )


def events_view() -> FromClause:
    e = Event.__table__
    c = Contact.__table__

    totals = (
        select(
            c.c.event_id,
            func.count(c.c.id).label("total_confirmations"),
            _flag_count(c.c.attended).label("total_attendees"),
        )
        .group_by(c.c.event_id)
        .subquery("event_totals")
    )

    return (
        select(
            e.c.id,
            e.c.name,
            e.c.event_timestamp,
            e.c.total_confirmations_target,
            e.c.total_attendance_target,
            e.c.created_at,
            e.c.updated_at,
            func.coalesce(totals.c.total_confirmations, 0).label("total_confirmations"),
            func.coalesce(totals.c.total_attendees, 0).label("total_attendees"),
        )
        .select_from(e.outerjoin(totals, totals.c.event_id == e.c.id))
        .subquery("events_view")
    )


def event_member_targets_view() -> FromClause:
    t = EventMemberTarget.__table__
    c = Contact.__table__

    totals = (
        select(
            c.c.event_id,
            c.c.contacted_by_member_id.label("member_id"),
            func.count(c.c.id).label("total_confirmations"),
            _flag_count(c.c.attended).label("total_attendees"),
        )
        .group_by(c.c.event_id, c.c.contacted_by_member_id)
        .subquery("member_totals")
    )

    return (
        select(
            t.c.id,
            t.c.event_id,
            t.c.member_id,
            t.c.confirmations_target,
            t.c.attendance_target,
            func.coalesce(totals.c.total_confirmations, 0).label("total_confirmations"),
            func.coalesce(totals.c.total_attendees, 0).label("total_attendees"),
        )
        .select_from(
            t.outerjoin(
                totals,
                and_(totals.c.event_id == t.c.event_id, totals.c.member_id == t.c.member_id),
            )
        )
        .subquery("event_member_targets_view")
    )


def event_bacenta_targets_view() -> FromClause:
    """
    Member targets and contact totals rolled up per (event, bacenta).
    Members without a bacenta form the bacenta_id = NULL group.
    """
    t = EventMemberTarget.__table__
    c = Contact.__table__
    m = Member.__table__

    target_sums = (
        select(
            t.c.event_id,
            m.c.bacenta_id,
            func.sum(t.c.confirmations_target).label("confirmations_target"),
            func.sum(t.c.attendance_target).label("attendance_target"),
        )
        .select_from(t.join(m, m.c.id == t.c.member_id))
        .group_by(t.c.event_id, m.c.bacenta_id)
        .subquery("bacenta_target_sums")
    )

    contact_sums = (
        select(
            c.c.event_id,
            m.c.bacenta_id,
            func.count(c.c.id).label("total_confirmations"),
            _flag_count(c.c.attended).label("total_attendees"),
            _flag_count(c.c.is_first_time).label("total_first_timers"),
        )
        .select_from(c.join(m, m.c.id == c.c.contacted_by_member_id))
        .group_by(c.c.event_id, m.c.bacenta_id)
        .subquery("bacenta_contact_sums")
    )

    return (
        select(
            target_sums.c.event_id,
            target_sums.c.bacenta_id,
            func.coalesce(target_sums.c.confirmations_target, 0).label("confirmations_target"),
            func.coalesce(target_sums.c.attendance_target, 0).label("attendance_target"),
            func.coalesce(contact_sums.c.total_confirmations, 0).label("total_confirmations"),
            func.coalesce(contact_sums.c.total_attendees, 0).label("total_attendees"),
            func.coalesce(contact_sums.c.total_first_timers, 0).label("total_first_timers"),
        )
        .select_from(
            target_sums.outerjoin(
                contact_sums,
                and_(
                    contact_sums.c.event_id == target_sums.c.event_id,
                    contact_sums.c.bacenta_id.is_not_distinct_from(target_sums.c.bacenta_id),
                ),
            )
        )
        .subquery("event_bacenta_targets_view")
    )


def event_cumulative_view() -> FromClause:
    """Contacts created per day, with a running total per event."""
    c = Contact.__table__
    day = func.date(c.c.created_at, type_=String)

    daily = (
        select(
            c.c.event_id,
            day.label("day"),
            func.count(c.c.id).label("daily_confirmations"),
        )
        .group_by(c.c.event_id, day)
        .subquery("daily_confirmations")
    )

    return (
        select(
            daily.c.event_id,
            daily.c.day,
            daily.c.daily_confirmations,
            func.sum(daily.c.daily_confirmations)
            .over(partition_by=daily.c.event_id, order_by=daily.c.day)
            .label("cumulative_confirmations"),
        )
        .subquery("event_cumulative_view")
    )
