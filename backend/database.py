"""
In-memory resource store: team member registry, project registry, allocation
store and timeline manager.

Every allocation or availability change for a team member runs its
conflict-check-then-write while holding that member's lock, so two requests
can never both pass the check against a stale view. Members are locked
independently. Reports work from snapshot copies and never take member locks.
"""

from datetime import date, timedelta
from itertools import count
import logging
import threading

from engine import (
    INTERVAL_WEEK,
    check_resource_conflicts, find_resource_conflicts, generate_capacity_report,
    generate_workload_distribution, calculate_phase_workload, recalculate_workload,
    validate_allocation_window
)
from errors import (
    ValidationError, NotFoundError, ConflictError,
    parse_date, validate_date_range, validate_enum, validate_positive_number, validate_non_negative_number
)
from models import (
    Availability, TeamMember, Project, ResourceAllocation,
    TimelinePhase, Milestone, ProjectDependency, ProjectTimeline, utc_now
)

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT = 'Unknown Project'

# Key of the store in Flask's app.extensions
STORE_EXTENSION = 'resource_store'


class ResourceStore:
    """Holds team members, projects, allocations and timelines for one engine instance"""

    def __init__(self, today=None):
        self.today = today or date.today

        self._team_members = {}
        self._projects = {}
        self._allocations = {}
        self._timelines = {}

        self._allocation_ids = count(1)
        self._timeline_ids = count(1)

        self._data_lock = threading.RLock()
        self._member_locks = {}
        self._member_locks_guard = threading.Lock()

    def _member_lock(self, team_member_id):
        """Exclusive lock scoped to one team member's allocation set"""
        with self._member_locks_guard:
            lock = self._member_locks.get(team_member_id)
            if lock is None:
                lock = self._member_locks[team_member_id] = threading.Lock()
            return lock

    # Team member registry

    def create_team_member(self, member_id, name, role, department, hourly_rate, capacity, skills=None, email=None):
        """Register a team member at onboarding"""
        if member_id is None or str(member_id).strip() == '':
            raise ValidationError("Team member id is required", field='id')
        if not name:
            raise ValidationError("Team member name is required", field='name')
        capacity = validate_positive_number(capacity, 'capacity')
        hourly_rate = validate_non_negative_number(hourly_rate, 'hourly_rate')

        team_member = TeamMember(
            id=member_id,
            name=name,
            role=role,
            department=department,
            hourly_rate=hourly_rate,
            capacity=capacity,
            skills=skills,
            email=email
        )

        with self._data_lock:
            if member_id in self._team_members:
                raise ConflictError(f"Team member with id '{member_id}' already exists")
            self._team_members[member_id] = team_member

        logger.info(f"Team member {member_id} ({name}) registered with {capacity}h/week capacity")
        return team_member

    def get_team_member(self, member_id):
        """Get team member by ID"""
        with self._data_lock:
            team_member = self._team_members.get(member_id)
        if team_member is None:
            raise NotFoundError("Team member", member_id)
        return team_member

    def get_team_member_name(self, member_id):
        with self._data_lock:
            team_member = self._team_members.get(member_id)
        return team_member.name if team_member else None

    def get_team_members(self, department=None, skills=None, include_inactive=False):
        """
        Get team members, optionally filtered.

        Args:
            department: Only members of this department
            skills: Only members having at least one of these skills
            include_inactive: Include soft-disabled members

        Returns:
            list: TeamMember objects sorted by name
        """
        with self._data_lock:
            members = list(self._team_members.values())

        if not include_inactive:
            members = [member for member in members if member.is_active]
        if department:
            members = [member for member in members if member.department == department]
        if skills:
            members = [member for member in members if member.has_any_skill(skills)]

        return sorted(members, key=lambda member: (member.name.lower(), str(member.id)))

    def _validate_availability(self, override):
        if not isinstance(override, Availability):
            raise ValidationError("Availability entries must be Availability objects")
        validate_enum(override.type, Availability.TYPES, 'type')
        override.date = parse_date(override.date, 'date')
        override.hours = validate_non_negative_number(override.hours, 'hours')
        return override

    def update_team_member_availability(self, member_id, availability):
        """Replace all availability overrides of a team member"""
        overrides = [self._validate_availability(override) for override in availability]

        with self._member_lock(member_id):
            team_member = self.get_team_member(member_id)
            with self._data_lock:
                team_member.availability = overrides
                team_member.updated_at = utc_now()
            self._recalculate_workload(member_id)

        logger.info(f"Availability replaced for team member {member_id}: {len(overrides)} override(s)")
        return team_member

    def set_availability(self, member_id, override):
        """Add or replace the override of the same type on the same date"""
        override = self._validate_availability(override)

        with self._member_lock(member_id):
            team_member = self.get_team_member(member_id)
            with self._data_lock:
                team_member.availability = [
                    existing for existing in team_member.availability
                    if not (existing.date == override.date and existing.type == override.type)
                ]
                team_member.availability.append(override)
                team_member.updated_at = utc_now()
            self._recalculate_workload(member_id)

        return team_member

    def deactivate_team_member(self, member_id):
        """Soft-disable a team member; existing allocations are kept"""
        with self._member_lock(member_id):
            team_member = self.get_team_member(member_id)
            with self._data_lock:
                team_member.is_active = False
                team_member.updated_at = utc_now()

        logger.info(f"Team member {member_id} deactivated")
        return team_member

    def delete_team_member(self, member_id):
        """Hard-delete a team member that no allocation references"""
        with self._member_lock(member_id):
            self.get_team_member(member_id)
            with self._data_lock:
                referenced = any(a.team_member_id == member_id for a in self._allocations.values())
                if referenced:
                    raise ConflictError(
                        f"Team member {member_id} has allocations and cannot be deleted; deactivate instead"
                    )
                del self._team_members[member_id]

        logger.info(f"Team member {member_id} deleted")
        return True

    # Project registry

    def create_project(self, project_id, name, status='planning'):
        """Register a project so allocations and timelines can reference it"""
        if project_id is None or str(project_id).strip() == '':
            raise ValidationError("Project id is required", field='id')
        if not name:
            raise ValidationError("Project name is required", field='name')
        validate_enum(status, Project.STATUSES, 'status')

        project = Project(id=project_id, name=name, status=status)
        with self._data_lock:
            if project_id in self._projects:
                raise ConflictError(f"Project with id '{project_id}' already exists")
            self._projects[project_id] = project
        return project

    def get_project(self, project_id):
        """Get project by ID"""
        with self._data_lock:
            project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def get_project_name(self, project_id):
        with self._data_lock:
            project = self._projects.get(project_id)
        return project.name if project else UNKNOWN_PROJECT

    def get_projects(self, status=None):
        """Get all projects sorted by name"""
        with self._data_lock:
            projects = list(self._projects.values())
        if status:
            projects = [project for project in projects if project.status == status]
        return sorted(projects, key=lambda project: project.name.lower())

    # Allocation store

    def snapshot_allocations(self, team_member_id=None, project_id=None):
        """Detached copies of stored allocations, optionally filtered"""
        with self._data_lock:
            allocations = [allocation.copy() for allocation in self._allocations.values()]

        if team_member_id is not None:
            allocations = [a for a in allocations if a.team_member_id == team_member_id]
        if project_id is not None:
            allocations = [a for a in allocations if a.project_id == project_id]
        return allocations

    def _get_live_allocation(self, allocation_id):
        with self._data_lock:
            allocation = self._allocations.get(allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation", allocation_id)
        return allocation

    def get_allocation(self, allocation_id):
        """Get allocation by ID"""
        return self._get_live_allocation(allocation_id).copy()

    def _conflict_error(self, conflicts):
        first = conflicts[0]
        return ConflictError(
            f"Resource conflict detected. Overallocation of {float(first.overallocation):.2f} hours "
            f"on {first.conflict_date.isoformat()}",
            conflicts
        )

    def _recalculate_workload(self, member_id):
        with self._data_lock:
            team_member = self._team_members.get(member_id)
        if team_member is None:
            return
        recalculate_workload(team_member, self.snapshot_allocations(team_member_id=member_id), as_of=self.today())

    def create_allocation(self, project_id, team_member_id, start_date, end_date, allocated_hours, role, notes=None):
        """
        Create an allocation after checking it against the member's capacity.

        Raises:
            NotFoundError: Unknown project or team member
            ValidationError: Bad window, non-positive hours or inactive member
            ConflictError: The allocation would overallocate the member
        """
        start_date = parse_date(start_date, 'start_date')
        end_date = parse_date(end_date, 'end_date')
        allocated_hours = validate_positive_number(allocated_hours, 'allocated_hours')
        validate_allocation_window(start_date, end_date)

        self.get_project(project_id)
        team_member = self.get_team_member(team_member_id)

        with self._member_lock(team_member_id):
            if not team_member.is_active:
                raise ValidationError(f"Team member {team_member_id} is inactive", field='team_member_id')

            conflicts = check_resource_conflicts(self, team_member_id, start_date, end_date, allocated_hours)
            if conflicts:
                logger.warning(
                    f"Allocation rejected for team member {team_member_id} on project {project_id}: "
                    f"{len(conflicts)} conflict day(s)"
                )
                raise self._conflict_error(conflicts)

            with self._data_lock:
                allocation = ResourceAllocation(
                    id=next(self._allocation_ids),
                    project_id=project_id,
                    team_member_id=team_member_id,
                    start_date=start_date,
                    end_date=end_date,
                    allocated_hours=allocated_hours,
                    role=role,
                    notes=notes
                )
                self._allocations[allocation.id] = allocation

            self._recalculate_workload(team_member_id)

        logger.info(
            f"Allocation {allocation.id} created: {allocated_hours}h of {team_member_id} on {project_id} "
            f"from {start_date.isoformat()} to {end_date.isoformat()}"
        )
        return allocation.copy()

    def update_allocation(self, allocation_id, **fields):
        """
        Update allocation fields in place.

        Window or hour changes are re-validated with the allocation's own
        current contribution left out. Moving an allocation to another team
        member is not supported; delete and re-create it instead.
        """
        current = self._get_live_allocation(allocation_id)
        member_id = current.team_member_id

        if 'team_member_id' in fields:
            if fields.pop('team_member_id') != member_id:
                raise ValidationError(
                    "team_member_id cannot be changed; delete the allocation and create a new one",
                    field='team_member_id'
                )

        unknown = [field for field in fields if field not in ResourceAllocation.UPDATABLE_FIELDS]
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        with self._member_lock(member_id):
            allocation = self._get_live_allocation(allocation_id)

            start_date = parse_date(fields.get('start_date', allocation.start_date), 'start_date')
            end_date = parse_date(fields.get('end_date', allocation.end_date), 'end_date')
            allocated_hours = allocation.allocated_hours
            if 'allocated_hours' in fields:
                allocated_hours = validate_positive_number(fields['allocated_hours'], 'allocated_hours')
            actual_hours = allocation.actual_hours
            if 'actual_hours' in fields:
                actual_hours = validate_non_negative_number(fields['actual_hours'], 'actual_hours')
            project_id = fields.get('project_id', allocation.project_id)
            if project_id != allocation.project_id:
                self.get_project(project_id)

            if any(field in fields for field in ('start_date', 'end_date', 'allocated_hours')):
                validate_allocation_window(start_date, end_date)
                conflicts = check_resource_conflicts(
                    self, member_id, start_date, end_date, allocated_hours,
                    exclude_allocation_id=allocation_id
                )
                if conflicts:
                    logger.warning(
                        f"Update of allocation {allocation_id} rejected: {len(conflicts)} conflict day(s)"
                    )
                    raise self._conflict_error(conflicts)

            with self._data_lock:
                allocation.project_id = project_id
                allocation.start_date = start_date
                allocation.end_date = end_date
                allocation.allocated_hours = allocated_hours
                allocation.actual_hours = actual_hours
                if 'role' in fields:
                    allocation.role = fields['role'] or ''
                if 'notes' in fields:
                    allocation.notes = fields['notes']
                allocation.updated_at = utc_now()

            self._recalculate_workload(member_id)

        logger.info(f"Allocation {allocation_id} updated: {', '.join(sorted(fields)) or 'no fields'}")
        return allocation.copy()

    def delete_allocation(self, allocation_id):
        """Delete an allocation; no validation beyond existence"""
        member_id = self._get_live_allocation(allocation_id).team_member_id

        with self._member_lock(member_id):
            with self._data_lock:
                if self._allocations.pop(allocation_id, None) is None:
                    raise NotFoundError("Allocation", allocation_id)
            self._recalculate_workload(member_id)

        logger.info(f"Allocation {allocation_id} deleted")
        return True

    def log_actual_hours(self, allocation_id, hours):
        """Add hours logged by time tracking to an allocation"""
        hours = validate_positive_number(hours, 'hours')
        with self._data_lock:
            allocation = self._get_live_allocation(allocation_id)
            allocation.actual_hours += hours
            allocation.updated_at = utc_now()
            return allocation.copy()

    def list_allocations(self, project_id=None, team_member_id=None, start_date=None, end_date=None):
        """
        Get allocations with optional filtering.

        An allocation matches a date range when it starts on or before the
        range end and ends on or after the range start. A missing range bound
        leaves that side open.

        Returns:
            list: ResourceAllocation copies sorted by start date
        """
        start_date = parse_date(start_date, 'start_date') if start_date else None
        end_date = parse_date(end_date, 'end_date') if end_date else None
        validate_date_range(start_date, end_date)

        allocations = self.snapshot_allocations(team_member_id=team_member_id, project_id=project_id)
        if start_date or end_date:
            range_start = start_date or date.min
            range_end = end_date or date.max
            allocations = [a for a in allocations if a.overlaps(range_start, range_end)]

        return sorted(allocations, key=lambda a: (a.start_date, a.id))

    # Conflict detection and reporting

    def check_conflicts(self, team_member_id, start_date, end_date, allocated_hours, exclude_allocation_id=None):
        """Conflicts a proposed allocation would cause, without storing anything"""
        return check_resource_conflicts(
            self,
            team_member_id,
            parse_date(start_date, 'start_date'),
            parse_date(end_date, 'end_date'),
            allocated_hours,
            exclude_allocation_id=exclude_allocation_id
        )

    def get_resource_conflicts(self, start_date=None, end_date=None):
        start_date = parse_date(start_date, 'start_date') if start_date else None
        end_date = parse_date(end_date, 'end_date') if end_date else None
        return find_resource_conflicts(self, start_date, end_date)

    def get_capacity_report(self, start_date, end_date):
        return generate_capacity_report(self, parse_date(start_date, 'start_date'), parse_date(end_date, 'end_date'))

    def get_workload_distribution(self, start_date, end_date, interval=INTERVAL_WEEK):
        return generate_workload_distribution(
            self, parse_date(start_date, 'start_date'), parse_date(end_date, 'end_date'), interval
        )

    def get_phase_workload(self, project_id):
        return calculate_phase_workload(self, project_id)

    # Timeline manager

    def create_timeline(self, project_id, phases, milestones=None, dependencies=None):
        """
        Create (or fully replace) the timeline of a project.

        The timeline window is derived from the earliest phase start and the
        latest phase end. Dependencies are stored as given; cycles are not
        detected. The store keeps its own copies of the given records.
        """
        self.get_project(project_id)
        phases = [phase.copy() for phase in phases or []]
        milestones = [milestone.copy() for milestone in milestones or []]
        dependencies = [dependency.copy() for dependency in dependencies or []]

        if not phases:
            raise ValidationError("A timeline needs at least one phase", field='phases')

        for phase in phases:
            phase.start_date = parse_date(phase.start_date, 'phase start_date')
            phase.end_date = parse_date(phase.end_date, 'phase end_date')
            validate_date_range(phase.start_date, phase.end_date, 'phase start_date', 'phase end_date')
            progress = validate_non_negative_number(phase.progress, 'progress')
            if progress > 100:
                raise ValidationError("progress must be between 0 and 100", field='progress')
            phase.progress = progress

        for milestone in milestones:
            milestone.due_date = parse_date(milestone.due_date, 'due_date')
            if milestone.completed_date:
                milestone.completed_date = parse_date(milestone.completed_date, 'completed_date')
            else:
                milestone.completed_date = None
            validate_enum(milestone.status, Milestone.STATUSES, 'status')

        for dependency in dependencies:
            validate_enum(dependency.type, ProjectDependency.TYPES, 'type')

        with self._data_lock:
            timeline = ProjectTimeline(
                id=next(self._timeline_ids),
                project_id=project_id,
                phases=phases,
                milestones=milestones,
                dependencies=dependencies
            )
            replaced = project_id in self._timelines
            self._timelines[project_id] = timeline

        logger.info(
            f"Timeline {'replaced' if replaced else 'created'} for project {project_id}: "
            f"{len(phases)} phase(s), {len(milestones)} milestone(s)"
        )
        return timeline.copy()

    def get_timeline(self, project_id):
        """Copy of a project's timeline, or None if it has none"""
        with self._data_lock:
            timeline = self._timelines.get(project_id)
            return timeline.copy() if timeline else None


def seed_database(store):
    """Seed the store with a small sample team when it is empty"""
    if store.get_team_members(include_inactive=True):
        logger.info("Store already contains data, skipping seed")
        return

    today = store.today()
    monday = today - timedelta(days=today.weekday())

    projects = [
        ('project1', 'E-commerce Platform', 'active'),
        ('project2', 'Corporate Website', 'active'),
        ('project3', 'Mobile App', 'planning'),
    ]
    for project_id, name, status in projects:
        store.create_project(project_id, name, status)

    team = [
        ('user1', 'Ana Torres', 'Senior Developer', 'Development', 75.0, ['React', 'Node.js', 'TypeScript', 'PostgreSQL']),
        ('user2', 'Luis Moreno', 'UI/UX Designer', 'Design', 60.0, ['Figma', 'Prototyping', 'User Research']),
        ('user3', 'Sara Gil', 'Junior Developer', 'Development', 45.0, ['React', 'JavaScript', 'CSS', 'Git']),
    ]
    for member_id, name, role, department, rate, skills in team:
        store.create_team_member(member_id, name, role, department, rate, 40.0, skills=skills)

    store.create_allocation(
        'project1', 'user1', monday - timedelta(days=7), monday + timedelta(days=18), 60.0,
        'Lead Developer', notes='Leading the backend development'
    )
    store.create_allocation(
        'project1', 'user2', monday, monday + timedelta(days=11), 40.0,
        'UI Designer', notes='Designing user interface components'
    )
    store.create_allocation(
        'project2', 'user3', monday, monday + timedelta(days=25), 80.0,
        'Frontend Developer'
    )

    store.create_timeline(
        'project1',
        phases=[
            TimelinePhase('phase1', 'Discovery', monday - timedelta(days=7), monday - timedelta(days=1),
                          phase='planning', progress=100),
            TimelinePhase('phase2', 'Build', monday, monday + timedelta(days=18), phase='development', progress=25),
        ],
        milestones=[
            Milestone('m1', 'Design sign-off', monday + timedelta(days=4), description='Approved UI kit'),
        ],
        dependencies=[
            ProjectDependency('d1', 'phase1', 'phase2', ProjectDependency.FINISH_TO_START),
        ]
    )

    logger.info(f"Seeded {len(team)} team members and {len(projects)} projects")
