from datetime import date, timedelta
from collections import defaultdict
from fractions import Fraction
import logging

from errors import ValidationError, NotFoundError, validate_date_range, validate_non_negative_number
from models import Availability, ResourceConflict, exact_hours
from workdays import is_working_day, iter_dates, working_days, month_end

logger = logging.getLogger(__name__)

INTERVAL_WEEK = 'week'
INTERVAL_MONTH = 'month'
INTERVALS = [INTERVAL_WEEK, INTERVAL_MONTH]


def _utilization(allocated, capacity):
    return (allocated / capacity * 100) if capacity > 0 else 0.0


def validate_allocation_window(start_date, end_date):
    """
    Reject windows that cannot carry hours.

    Returns:
        int: Working days in the window
    """
    validate_date_range(start_date, end_date)
    days = working_days(start_date, end_date)
    if days <= 0:
        raise ValidationError(
            f"Window {start_date.isoformat()} to {end_date.isoformat()} contains no working days"
        )
    return days


def resolve_available_hours(team_member, day):
    """
    Hours a team member can work on a specific date.

    Overrides for the date are applied in precedence order
    vacation/sick, then busy, then an explicit available override,
    falling back to the default daily capacity.

    Args:
        team_member: TeamMember object
        day: Calendar date

    Returns:
        Fraction: Available hours, never negative
    """
    default_hours = team_member.exact_daily_capacity
    overrides = team_member.availability_for(day)
    if not overrides:
        return default_hours

    if any(override.is_absence for override in overrides):
        return Fraction(0)

    busy = [override for override in overrides if override.type == Availability.TYPE_BUSY]
    if busy:
        return max(Fraction(0), default_hours - sum(exact_hours(override.hours) for override in busy))

    explicit = [override for override in overrides if override.type == Availability.TYPE_AVAILABLE]
    if explicit:
        return max(Fraction(0), exact_hours(explicit[-1].hours))

    return default_hours


def check_resource_conflicts(store, team_member_id, start_date, end_date, allocated_hours,
                             exclude_allocation_id=None):
    """
    Detect days on which a proposed allocation would overallocate a team member.

    Every working day of the proposed window is checked: the proposal's daily
    share is added to the daily share of each other allocation of the member
    covering that day and compared with the hours available that day.
    Hours are compared as exact rationals with no epsilon, so a saturated day
    rejects any positive extra hours.

    Args:
        store: ResourceStore holding members and allocations
        team_member_id: ID of the team member
        start_date, end_date: Proposed window (inclusive)
        allocated_hours: Proposed total hours over the window
        exclude_allocation_id: Allocation to leave out (update-in-place checks)

    Returns:
        list: ResourceConflict entries ordered by date, empty when the proposal fits
    """
    team_member = store.get_team_member(team_member_id)
    proposal_days = validate_allocation_window(start_date, end_date)
    allocated_hours = validate_non_negative_number(allocated_hours, 'allocated_hours')

    existing_allocations = [
        allocation for allocation in store.snapshot_allocations(team_member_id=team_member_id)
        if allocation.id != exclude_allocation_id and allocation.overlaps(start_date, end_date)
    ]

    proposed_daily = exact_hours(allocated_hours) / proposal_days
    conflicts = []

    for day in iter_dates(start_date, end_date):
        if not is_working_day(day):
            continue

        available_hours = resolve_available_hours(team_member, day)
        covering = [allocation for allocation in existing_allocations if allocation.covers(day)]
        existing_daily = sum(allocation.exact_daily_hours for allocation in covering)
        total_allocated = existing_daily + proposed_daily

        if total_allocated > available_hours:
            conflicts.append(ResourceConflict(
                team_member_id=team_member.id,
                team_member_name=team_member.name,
                conflict_date=day,
                allocated_hours=total_allocated,
                available_hours=available_hours,
                projects=[
                    {
                        'project_id': allocation.project_id,
                        'project_name': store.get_project_name(allocation.project_id),
                        'allocated_hours': allocation.exact_daily_hours
                    }
                    for allocation in covering
                ]
            ))

    if conflicts:
        logger.debug(
            f"{len(conflicts)} conflict day(s) for team member {team_member_id} "
            f"between {start_date.isoformat()} and {end_date.isoformat()}"
        )

    return conflicts


def find_resource_conflicts(store, start_date=None, end_date=None):
    """
    List every overallocated day in the stored data.

    Each stored allocation is re-checked against the others of the same
    member, so conflicts introduced outside the engine (manual data edits,
    availability changes after booking) surface here.

    Args:
        store: ResourceStore
        start_date, end_date: Optional range restricting the reported dates

    Returns:
        list: Unique ResourceConflict entries sorted by date then team member
    """
    if start_date and end_date:
        validate_date_range(start_date, end_date)

    seen = {}
    for team_member in store.get_team_members(include_inactive=True):
        member_allocations = store.snapshot_allocations(team_member_id=team_member.id)
        if start_date and end_date:
            member_allocations = [a for a in member_allocations if a.overlaps(start_date, end_date)]

        for allocation in member_allocations:
            if allocation.working_days <= 0:
                continue
            conflicts = check_resource_conflicts(
                store,
                team_member.id,
                allocation.start_date,
                allocation.end_date,
                allocation.allocated_hours,
                exclude_allocation_id=allocation.id
            )
            for conflict in conflicts:
                if start_date and conflict.conflict_date < start_date:
                    continue
                if end_date and conflict.conflict_date > end_date:
                    continue
                conflict.projects.append({
                    'project_id': allocation.project_id,
                    'project_name': store.get_project_name(allocation.project_id),
                    'allocated_hours': allocation.exact_daily_hours
                })
                seen.setdefault((conflict.team_member_id, conflict.conflict_date), conflict)

    return sorted(seen.values(), key=lambda c: (c.conflict_date, str(c.team_member_id)))


def _member_hours_in_period(allocations, period_start, period_end):
    """Prorated hours per project for a member's allocations inside a period"""
    project_hours = defaultdict(float)
    for allocation in allocations:
        if not allocation.overlaps(period_start, period_end):
            continue
        hours = allocation.hours_in_period(period_start, period_end)
        if hours > 0:
            project_hours[allocation.project_id] += hours
    return project_hours


def generate_capacity_report(store, start_date, end_date):
    """
    Per-member capacity and utilization over a reporting window.

    Utilization is not capped: data edited outside the engine can push a
    member above 100%.

    Args:
        store: ResourceStore
        start_date, end_date: Reporting window

    Returns:
        list: One report dict per active team member, highest utilization first
    """
    validate_date_range(start_date, end_date)
    window_days = working_days(start_date, end_date)
    reports = []

    for team_member in store.get_team_members():
        total_capacity = team_member.capacity_in_period(start_date, end_date)
        allocations = store.snapshot_allocations(team_member_id=team_member.id)
        project_hours = _member_hours_in_period(allocations, start_date, end_date)
        total_allocated = sum(project_hours.values())

        projects = [
            {
                'project_id': project_id,
                'project_name': store.get_project_name(project_id),
                'allocated_hours': round(hours, 2),
                'percentage': round(_utilization(hours, total_capacity), 2)
            }
            for project_id, hours in project_hours.items()
        ]
        projects.sort(key=lambda p: p['allocated_hours'], reverse=True)

        reports.append({
            'team_member_id': team_member.id,
            'team_member_name': team_member.name,
            'role': team_member.role,
            'department': team_member.department,
            'period': {
                'start_date': start_date.isoformat(),
                'end_date': end_date.isoformat(),
                'working_days': window_days
            },
            'total_capacity': round(total_capacity, 2),
            'allocated_hours': round(total_allocated, 2),
            'available_hours': round(max(0.0, total_capacity - total_allocated), 2),
            'utilization_rate': round(_utilization(total_allocated, total_capacity), 2),
            'projects': projects
        })

    reports.sort(key=lambda r: r['utilization_rate'], reverse=True)
    return reports


def iter_periods(start_date, end_date, interval=INTERVAL_WEEK):
    """
    Split a window into consecutive reporting buckets.

    Weeks are 7 calendar days from start_date; months follow calendar month
    boundaries. The last bucket is clipped to end_date so the buckets
    partition the window exactly.

    Yields:
        tuple: (period_start, period_end)
    """
    if interval not in INTERVALS:
        raise ValidationError(f"interval must be one of: {', '.join(INTERVALS)}", field='interval')

    current_date = start_date
    while current_date <= end_date:
        if interval == INTERVAL_WEEK:
            period_end = current_date + timedelta(days=6)
        else:
            period_end = month_end(current_date)
        period_end = min(period_end, end_date)

        yield current_date, period_end
        current_date = period_end + timedelta(days=1)


def generate_workload_distribution(store, start_date, end_date, interval=INTERVAL_WEEK):
    """
    Team-wide capacity and allocation per weekly or monthly bucket.

    Args:
        store: ResourceStore
        start_date, end_date: Reporting window
        interval: 'week' or 'month'

    Returns:
        list: One dict per bucket in chronological order
    """
    validate_date_range(start_date, end_date)
    team_members = store.get_team_members()
    allocations_by_member = {
        member.id: store.snapshot_allocations(team_member_id=member.id) for member in team_members
    }

    distributions = []
    for period_start, period_end in iter_periods(start_date, end_date, interval):
        period_days = working_days(period_start, period_end)
        total_capacity = 0.0
        total_allocated = 0.0
        member_data = []

        for member in team_members:
            member_capacity = member.capacity_in_period(period_start, period_end)
            project_hours = _member_hours_in_period(allocations_by_member[member.id], period_start, period_end)
            member_allocated = sum(project_hours.values())

            total_capacity += member_capacity
            total_allocated += member_allocated

            member_data.append({
                'id': member.id,
                'name': member.name,
                'capacity': round(member_capacity, 2),
                'allocated': round(member_allocated, 2),
                'utilization': round(_utilization(member_allocated, member_capacity), 2)
            })

        member_data.sort(key=lambda m: m['utilization'], reverse=True)

        distributions.append({
            'period_start': period_start.isoformat(),
            'period_end': period_end.isoformat(),
            'working_days': period_days,
            'total_capacity': round(total_capacity, 2),
            'total_allocated': round(total_allocated, 2),
            'utilization_rate': round(_utilization(total_allocated, total_capacity), 2),
            'team_members': member_data
        })

    return distributions


def calculate_phase_workload(store, project_id):
    """
    Hours of a project's allocations falling inside each timeline phase.

    Args:
        store: ResourceStore
        project_id: ID of the project

    Returns:
        dict: Timeline window plus per-phase hours broken down by team member
    """
    timeline = store.get_timeline(project_id)
    if timeline is None:
        raise NotFoundError("Timeline for project", project_id)

    allocations = store.snapshot_allocations(project_id=project_id)
    phases = []
    phased_total = 0.0

    for phase in timeline.phases:
        member_hours = defaultdict(float)
        for allocation in allocations:
            hours = allocation.hours_in_period(phase.start_date, phase.end_date)
            if hours > 0:
                member_hours[allocation.team_member_id] += hours
        phased_total += sum(member_hours.values())

        phases.append({
            'phase_id': phase.id,
            'name': phase.name,
            'start_date': phase.start_date.isoformat(),
            'end_date': phase.end_date.isoformat(),
            'progress': phase.progress,
            'working_days': working_days(phase.start_date, phase.end_date),
            'allocated_hours': round(sum(member_hours.values()), 2),
            'team_members': [
                {
                    'team_member_id': member_id,
                    'team_member_name': store.get_team_member_name(member_id),
                    'allocated_hours': round(hours, 2)
                }
                for member_id, hours in sorted(member_hours.items(), key=lambda item: item[1], reverse=True)
            ]
        })

    return {
        'project_id': project_id,
        'project_name': store.get_project_name(project_id),
        'start_date': timeline.start_date.isoformat(),
        'end_date': timeline.end_date.isoformat(),
        'phases': phases,
        # Only meaningful when phases do not share dates
        'unphased_hours': None if _phases_overlap(timeline.phases) else round(
            max(0.0, sum(a.allocated_hours for a in allocations) - phased_total), 2
        )
    }


def _phases_overlap(phases):
    ordered = sorted(phases, key=lambda phase: phase.start_date)
    return any(later.start_date <= earlier.end_date for earlier, later in zip(ordered, ordered[1:]))


def recalculate_workload(team_member, allocations, as_of=None):
    """
    Current workload of a team member in hours per day.

    Args:
        team_member: TeamMember to update
        allocations: The member's allocations
        as_of: Reference date (defaults to today)

    Returns:
        float: Sum of the daily shares of allocations covering as_of
    """
    as_of = as_of or date.today()
    team_member.current_workload = sum(
        allocation.daily_hours for allocation in allocations if allocation.covers(as_of)
    )
    return team_member.current_workload
