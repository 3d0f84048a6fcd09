from datetime import datetime, timezone
from fractions import Fraction
from workdays import working_days, overlapping_working_days, ranges_overlap


def utc_now():
    """Return current UTC time (timezone-aware)"""
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# Finest hour fraction kept when snapping floats to exact rationals
HOURS_MAX_DENOMINATOR = 10 ** 9


def exact_hours(value):
    """
    Hours as an exact rational.

    Floats are snapped to the nearest fraction with a bounded denominator, so
    40/3 entered as a float sums back to exactly 40 while 1e-7 stays non-zero.
    """
    return Fraction(value).limit_denominator(HOURS_MAX_DENOMINATOR)


class Availability:
    """Per-date override of a team member's default daily capacity"""

    TYPE_AVAILABLE = 'available'
    TYPE_BUSY = 'busy'
    TYPE_VACATION = 'vacation'
    TYPE_SICK = 'sick'

    TYPES = [TYPE_AVAILABLE, TYPE_BUSY, TYPE_VACATION, TYPE_SICK]

    def __init__(self, date, type, hours=0.0, description=None):
        self.date = date
        self.type = type
        self.hours = hours
        self.description = description

    @property
    def is_absence(self):
        return self.type in (self.TYPE_VACATION, self.TYPE_SICK)

    def to_dict(self):
        """Convert availability override to dictionary"""
        return {
            'date': _iso(self.date),
            'type': self.type,
            'hours': self.hours,
            'description': self.description
        }


class TeamMember:
    """Team member with a weekly capacity and per-date availability overrides"""

    WORKING_DAYS_PER_WEEK = 5

    def __init__(self, id, name, role, department, hourly_rate, capacity, skills=None, email=None,
                 availability=None, is_active=True):
        self.id = id
        self.name = name
        self.email = email
        self.role = role
        self.department = department
        self.hourly_rate = hourly_rate
        self.capacity = capacity  # hours per week
        self.skills = list(skills or [])
        self.availability = list(availability or [])
        self.current_workload = 0.0  # hours per day, recomputed after allocation changes
        self.is_active = is_active
        self.created_at = utc_now()
        self.updated_at = utc_now()

    @property
    def daily_capacity(self):
        """Default hours per working day"""
        return self.capacity / self.WORKING_DAYS_PER_WEEK

    @property
    def exact_daily_capacity(self):
        """Default hours per working day as an exact rational, used for conflict checks"""
        return exact_hours(self.capacity) / self.WORKING_DAYS_PER_WEEK

    def availability_for(self, day):
        """All availability overrides recorded for a specific date"""
        return [override for override in self.availability if override.date == day]

    def has_any_skill(self, skills):
        """True if the member has at least one of the given skills"""
        return any(skill in self.skills for skill in skills)

    def capacity_in_period(self, start_date, end_date):
        """Default capacity hours across the working days of a period"""
        return self.daily_capacity * working_days(start_date, end_date)

    def to_dict(self, include_availability=True):
        """Convert team member to dictionary"""
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'department': self.department,
            'hourly_rate': self.hourly_rate,
            'capacity': self.capacity,
            'daily_capacity': self.daily_capacity,
            'skills': list(self.skills),
            'current_workload': round(self.current_workload, 2),
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_availability:
            data['availability'] = [
                override.to_dict() for override in sorted(self.availability, key=lambda a: a.date)
            ]
        return data


class Project:
    """Project registry entry used to validate allocations and label reports"""

    STATUSES = ['planning', 'active', 'on-hold', 'completed', 'cancelled']

    def __init__(self, id, name, status='planning'):
        self.id = id
        self.name = name
        self.status = status
        self.created_at = utc_now()

    def to_dict(self):
        """Convert project to dictionary"""
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'created_at': _iso(self.created_at)
        }


class ResourceAllocation:
    """Commitment of a team member's hours to a project over a date window"""

    UPDATABLE_FIELDS = ['project_id', 'start_date', 'end_date', 'allocated_hours', 'actual_hours', 'role', 'notes']

    def __init__(self, id, project_id, team_member_id, start_date, end_date, allocated_hours, role,
                 notes=None, actual_hours=0.0):
        self.id = id
        self.project_id = project_id
        self.team_member_id = team_member_id
        self.start_date = start_date
        self.end_date = end_date
        self.allocated_hours = allocated_hours
        self.actual_hours = actual_hours
        self.role = role or ''
        self.notes = notes
        self.created_at = utc_now()
        self.updated_at = utc_now()

    @property
    def working_days(self):
        """Working days in the allocation window"""
        return working_days(self.start_date, self.end_date)

    @property
    def daily_hours(self):
        """Allocated hours spread evenly across the window's working days"""
        days = self.working_days
        if days <= 0:
            return 0.0
        return self.allocated_hours / days

    @property
    def exact_daily_hours(self):
        """daily_hours as an exact rational"""
        days = self.working_days
        if days <= 0:
            return Fraction(0)
        return exact_hours(self.allocated_hours) / days

    def overlaps(self, start_date, end_date):
        return ranges_overlap(self.start_date, self.end_date, start_date, end_date)

    def covers(self, day):
        return self.start_date <= day <= self.end_date

    def hours_in_period(self, period_start, period_end):
        """
        Allocated hours falling inside a period, prorated by the working days
        the allocation shares with it.
        """
        overlap_days = overlapping_working_days(self.start_date, self.end_date, period_start, period_end)
        if overlap_days <= 0:
            return 0.0
        return self.daily_hours * overlap_days

    def copy(self):
        """Detached copy for snapshot reads"""
        clone = ResourceAllocation(
            id=self.id,
            project_id=self.project_id,
            team_member_id=self.team_member_id,
            start_date=self.start_date,
            end_date=self.end_date,
            allocated_hours=self.allocated_hours,
            role=self.role,
            notes=self.notes,
            actual_hours=self.actual_hours
        )
        clone.created_at = self.created_at
        clone.updated_at = self.updated_at
        return clone

    def to_dict(self):
        """Convert allocation to dictionary"""
        return {
            'id': self.id,
            'project_id': self.project_id,
            'team_member_id': self.team_member_id,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'allocated_hours': self.allocated_hours,
            'actual_hours': self.actual_hours,
            'role': self.role,
            'notes': self.notes,
            'working_days': self.working_days,
            'daily_hours': round(self.daily_hours, 4),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ResourceConflict:
    """
    A day on which committed plus proposed hours exceed a member's available hours.

    Hour values are exact rationals; to_dict converts them to floats.
    """

    def __init__(self, team_member_id, team_member_name, conflict_date, allocated_hours, available_hours,
                 projects=None):
        self.team_member_id = team_member_id
        self.team_member_name = team_member_name
        self.conflict_date = conflict_date
        self.allocated_hours = allocated_hours
        self.available_hours = available_hours
        self.overallocation = allocated_hours - available_hours
        self.projects = list(projects or [])

    def to_dict(self):
        """Convert conflict to dictionary"""
        return {
            'team_member_id': self.team_member_id,
            'team_member_name': self.team_member_name,
            'conflict_date': _iso(self.conflict_date),
            'allocated_hours': round(float(self.allocated_hours), 4),
            'available_hours': round(float(self.available_hours), 4),
            'overallocation': round(float(self.overallocation), 4),
            'projects': [
                {
                    'project_id': project['project_id'],
                    'project_name': project['project_name'],
                    'allocated_hours': round(float(project['allocated_hours']), 4)
                }
                for project in self.projects
            ]
        }


class TimelinePhase:
    """A dated phase of a project timeline"""

    def __init__(self, id, name, start_date, end_date, phase=None, progress=0.0, tasks=None):
        self.id = id
        self.name = name
        self.phase = phase or name
        self.start_date = start_date
        self.end_date = end_date
        self.progress = progress
        self.tasks = list(tasks or [])

    def copy(self):
        return TimelinePhase(self.id, self.name, self.start_date, self.end_date, phase=self.phase,
                             progress=self.progress, tasks=self.tasks)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phase': self.phase,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'progress': self.progress,
            'tasks': list(self.tasks)
        }


class Milestone:
    """Dated checkpoint on a project timeline"""

    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_OVERDUE = 'overdue'

    STATUSES = [STATUS_PENDING, STATUS_COMPLETED, STATUS_OVERDUE]

    def __init__(self, id, name, due_date, description='', completed_date=None, status=None, dependencies=None):
        self.id = id
        self.name = name
        self.description = description or ''
        self.due_date = due_date
        self.completed_date = completed_date
        self.status = status or (self.STATUS_COMPLETED if completed_date else self.STATUS_PENDING)
        self.dependencies = list(dependencies or [])

    def copy(self):
        return Milestone(self.id, self.name, self.due_date, description=self.description,
                         completed_date=self.completed_date, status=self.status, dependencies=self.dependencies)

    @property
    def is_completed(self):
        return self.status == self.STATUS_COMPLETED or self.completed_date is not None

    def is_overdue(self, as_of):
        """A milestone is overdue once its due date has passed without completion"""
        return not self.is_completed and self.due_date < as_of

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'due_date': _iso(self.due_date),
            'completed_date': _iso(self.completed_date),
            'status': self.status,
            'dependencies': list(self.dependencies)
        }


class ProjectDependency:
    """Edge between two phases or tasks"""

    FINISH_TO_START = 'finish_to_start'
    START_TO_START = 'start_to_start'
    FINISH_TO_FINISH = 'finish_to_finish'
    START_TO_FINISH = 'start_to_finish'

    TYPES = [FINISH_TO_START, START_TO_START, FINISH_TO_FINISH, START_TO_FINISH]

    def __init__(self, id, from_task_id, to_task_id, type=FINISH_TO_START, lag=0):
        self.id = id
        self.from_task_id = from_task_id
        self.to_task_id = to_task_id
        self.type = type
        self.lag = lag  # days

    def copy(self):
        return ProjectDependency(self.id, self.from_task_id, self.to_task_id, type=self.type, lag=self.lag)

    def to_dict(self):
        return {
            'id': self.id,
            'from_task_id': self.from_task_id,
            'to_task_id': self.to_task_id,
            'type': self.type,
            'lag': self.lag
        }


class ProjectTimeline:
    """Phases, milestones and dependencies of a project"""

    def __init__(self, id, project_id, phases, milestones=None, dependencies=None):
        self.id = id
        self.project_id = project_id
        self.phases = sorted(phases, key=lambda phase: (phase.start_date, phase.end_date))
        self.milestones = list(milestones or [])
        self.dependencies = list(dependencies or [])
        self.created_at = utc_now()

    @property
    def start_date(self):
        """Earliest phase start"""
        return min(phase.start_date for phase in self.phases) if self.phases else None

    @property
    def end_date(self):
        """Latest phase end"""
        return max(phase.end_date for phase in self.phases) if self.phases else None

    def copy(self):
        """Deep copy detached from the stored timeline"""
        clone = ProjectTimeline(
            id=self.id,
            project_id=self.project_id,
            phases=[phase.copy() for phase in self.phases],
            milestones=[milestone.copy() for milestone in self.milestones],
            dependencies=[dependency.copy() for dependency in self.dependencies]
        )
        clone.created_at = self.created_at
        return clone

    def overdue_milestones(self, as_of):
        return [milestone for milestone in self.milestones if milestone.is_overdue(as_of)]

    def to_dict(self):
        """Convert timeline to dictionary"""
        return {
            'id': self.id,
            'project_id': self.project_id,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'phases': [phase.to_dict() for phase in self.phases],
            'milestones': [milestone.to_dict() for milestone in self.milestones],
            'dependencies': [dependency.to_dict() for dependency in self.dependencies],
            'created_at': _iso(self.created_at)
        }
