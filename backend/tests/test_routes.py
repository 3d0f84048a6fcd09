"""
Unit tests for resource planning API routes
"""

import pytest
from datetime import date
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from database import ResourceStore, STORE_EXTENSION


@pytest.fixture
def app():
    """Create and configure a test app instance."""
    app = create_app('testing', store=ResourceStore(today=lambda: date(2024, 1, 3)))
    yield app


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def team(client):
    """Register two members and two projects through the API"""
    members = [
        {'id': 'dev1', 'name': 'Ana Torres', 'role': 'Senior Developer', 'department': 'Development',
         'hourly_rate': 75, 'capacity': 40, 'skills': ['React', 'Python']},
        {'id': 'des1', 'name': 'Luis Moreno', 'role': 'UI/UX Designer', 'department': 'Design',
         'hourly_rate': 60, 'capacity': 40, 'skills': ['Figma']},
    ]
    for member in members:
        assert client.post('/api/team-members', json=member).status_code == 201

    for project in [{'id': 'proj1', 'name': 'E-commerce Platform', 'status': 'active'},
                    {'id': 'proj2', 'name': 'Corporate Website'}]:
        assert client.post('/api/projects', json=project).status_code == 201

    return members


def allocation_payload(**overrides):
    payload = {
        'project_id': 'proj1',
        'team_member_id': 'dev1',
        'start_date': '2024-01-01',
        'end_date': '2024-01-05',
        'allocated_hours': 40,
        'role': 'Developer'
    }
    payload.update(overrides)
    return payload


class TestHealthCheck:
    """Test health check endpoint"""

    def test_health_check(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200

        data = response.get_json()
        assert data['status'] == 'healthy'

    def test_store_attached(self, app):
        assert isinstance(app.extensions[STORE_EXTENSION], ResourceStore)


class TestTeamMemberRoutes:
    """Test team member endpoints"""

    def test_list_team_members(self, client, team):
        response = client.get('/api/team-members')
        assert response.status_code == 200

        data = response.get_json()
        assert [m['id'] for m in data] == ['dev1', 'des1']
        assert 'availability' not in data[0]

    def test_filter_team_members(self, client, team):
        response = client.get('/api/team-members?department=Design')
        assert [m['id'] for m in response.get_json()] == ['des1']

        response = client.get('/api/team-members?skills=Python,Go')
        assert [m['id'] for m in response.get_json()] == ['dev1']

    def test_get_team_member(self, client, team):
        response = client.get('/api/team-members/dev1')
        assert response.status_code == 200

        data = response.get_json()
        assert data['name'] == 'Ana Torres'
        assert data['daily_capacity'] == 8.0
        assert data['availability'] == []

    def test_get_team_member_not_found(self, client):
        response = client.get('/api/team-members/nobody')
        assert response.status_code == 404
        assert response.get_json()['error']['type'] == 'NotFoundError'

    def test_create_team_member_missing_fields(self, client):
        response = client.post('/api/team-members', json={'id': 'dev9', 'name': 'Incomplete'})
        assert response.status_code == 400

        data = response.get_json()
        assert data['error']['type'] == 'ValidationError'
        assert 'capacity' in data['error']['message']

    def test_create_team_member_duplicate(self, client, team):
        response = client.post('/api/team-members', json=team[0])
        assert response.status_code == 409

    def test_create_team_member_non_json(self, client):
        response = client.post('/api/team-members', data='not json', content_type='text/plain')
        assert response.status_code == 400

    def test_deactivate_team_member(self, client, team):
        response = client.delete('/api/team-members/des1')
        assert response.status_code == 200
        assert response.get_json()['team_member']['is_active'] is False

        response = client.get('/api/team-members')
        assert [m['id'] for m in response.get_json()] == ['dev1']

        response = client.get('/api/team-members?include_inactive=true')
        assert len(response.get_json()) == 2

    def test_add_availability(self, client, team):
        response = client.post('/api/team-members/dev1/availability', json={
            'date': '2024-01-03', 'type': 'vacation', 'description': 'Day off'
        })
        assert response.status_code == 201
        assert response.get_json()['availability'][0]['type'] == 'vacation'

    def test_replace_availability(self, client, team):
        client.post('/api/team-members/dev1/availability', json={'date': '2024-01-02', 'type': 'sick'})

        response = client.put('/api/team-members/dev1/availability', json={
            'availability': [{'date': '2024-01-04', 'type': 'busy', 'hours': 2}]
        })
        assert response.status_code == 200

        availability = response.get_json()['availability']
        assert availability == [{'date': '2024-01-04', 'type': 'busy', 'hours': 2.0, 'description': None}]

    def test_invalid_availability_type(self, client, team):
        response = client.post('/api/team-members/dev1/availability', json={'date': '2024-01-03', 'type': 'holiday'})
        assert response.status_code == 400
        assert response.get_json()['error']['details']['field'] == 'type'


class TestProjectRoutes:
    """Test project endpoints"""

    def test_list_projects(self, client, team):
        response = client.get('/api/projects')
        assert response.status_code == 200
        assert [p['id'] for p in response.get_json()] == ['proj2', 'proj1']

        response = client.get('/api/projects?status=active')
        assert [p['id'] for p in response.get_json()] == ['proj1']

    def test_create_project_invalid_status(self, client):
        response = client.post('/api/projects', json={'id': 'proj9', 'name': 'X', 'status': 'paused'})
        assert response.status_code == 400


class TestAllocationRoutes:
    """Test allocation endpoints"""

    def test_create_allocation(self, client, team):
        response = client.post('/api/allocations', json=allocation_payload(allocated_hours=20, notes='Backend'))
        assert response.status_code == 201

        data = response.get_json()
        assert data['id'] == 1
        assert data['working_days'] == 5
        assert data['daily_hours'] == 4.0
        assert data['notes'] == 'Backend'

    def test_create_allocation_conflict(self, client, team):
        client.post('/api/allocations', json=allocation_payload())

        response = client.post('/api/allocations', json=allocation_payload(
            project_id='proj2', start_date='2024-01-03', end_date='2024-01-03', allocated_hours=1
        ))
        assert response.status_code == 409

        error = response.get_json()['error']
        assert error['type'] == 'ConflictError'
        assert error['message'] == 'Resource conflict detected. Overallocation of 1.00 hours on 2024-01-03'
        conflict = error['details']['conflicts'][0]
        assert conflict['conflict_date'] == '2024-01-03'
        assert conflict['allocated_hours'] == 9.0
        assert conflict['available_hours'] == 8.0
        assert conflict['projects'][0]['project_name'] == 'E-commerce Platform'

    def test_create_allocation_validation(self, client, team):
        response = client.post('/api/allocations', json=allocation_payload(end_date='2023-12-31'))
        assert response.status_code == 400

        response = client.post('/api/allocations', json=allocation_payload(start_date='01/01/2024'))
        assert response.status_code == 400

        response = client.post('/api/allocations', json=allocation_payload(allocated_hours=0))
        assert response.status_code == 400

    def test_create_allocation_unknown_member(self, client, team):
        response = client.post('/api/allocations', json=allocation_payload(team_member_id='nobody'))
        assert response.status_code == 404

    def test_check_conflicts(self, client, team):
        created = client.post('/api/allocations', json=allocation_payload()).get_json()

        response = client.post('/api/allocations/check-conflicts', json={
            'team_member_id': 'dev1', 'start_date': '2024-01-01', 'end_date': '2024-01-05', 'allocated_hours': 40
        })
        data = response.get_json()
        assert response.status_code == 200
        assert data['has_conflicts'] is True
        assert len(data['conflicts']) == 5

        response = client.post('/api/allocations/check-conflicts', json={
            'team_member_id': 'dev1', 'start_date': '2024-01-01', 'end_date': '2024-01-05',
            'allocated_hours': 40, 'exclude_allocation_id': created['id']
        })
        assert response.get_json() == {'has_conflicts': False, 'conflicts': []}

    def test_check_conflicts_exclude_id_as_string(self, client, team):
        created = client.post('/api/allocations', json=allocation_payload()).get_json()

        response = client.post('/api/allocations/check-conflicts', json={
            'team_member_id': 'dev1', 'start_date': '2024-01-01', 'end_date': '2024-01-05',
            'allocated_hours': 40, 'exclude_allocation_id': str(created['id'])
        })
        assert response.status_code == 200
        assert response.get_json() == {'has_conflicts': False, 'conflicts': []}

    @pytest.mark.parametrize("exclude_id", ['abc', 1.5, True, [1]])
    def test_check_conflicts_invalid_exclude_id(self, client, team, exclude_id):
        client.post('/api/allocations', json=allocation_payload())

        response = client.post('/api/allocations/check-conflicts', json={
            'team_member_id': 'dev1', 'start_date': '2024-01-01', 'end_date': '2024-01-05',
            'allocated_hours': 40, 'exclude_allocation_id': exclude_id
        })
        assert response.status_code == 400
        assert response.get_json()['error']['details']['field'] == 'exclude_allocation_id'

    def test_get_allocations_filters(self, client, team):
        client.post('/api/allocations', json=allocation_payload(allocated_hours=8))
        client.post('/api/allocations', json=allocation_payload(
            project_id='proj2', team_member_id='des1', start_date='2024-01-15', end_date='2024-01-19', allocated_hours=8
        ))

        assert len(client.get('/api/allocations').get_json()) == 2
        assert [a['id'] for a in client.get('/api/allocations?project_id=proj2').get_json()] == [2]
        assert [a['id'] for a in client.get('/api/allocations?team_member_id=dev1').get_json()] == [1]
        response = client.get('/api/allocations?start_date=2024-01-08&end_date=2024-01-31')
        assert [a['id'] for a in response.get_json()] == [2]

    def test_get_allocation(self, client, team):
        client.post('/api/allocations', json=allocation_payload())

        assert client.get('/api/allocations/1').status_code == 200
        assert client.get('/api/allocations/99').status_code == 404

    def test_update_allocation(self, client, team):
        client.post('/api/allocations', json=allocation_payload(allocated_hours=20))

        response = client.put('/api/allocations/1', json={'allocated_hours': 30, 'notes': 'More backend work'})
        assert response.status_code == 200
        assert response.get_json()['allocated_hours'] == 30.0

        response = client.put('/api/allocations/1', json={'allocated_hours': 45})
        assert response.status_code == 409

        response = client.put('/api/allocations/1', json={'team_member_id': 'des1'})
        assert response.status_code == 400

    def test_delete_allocation(self, client, team):
        client.post('/api/allocations', json=allocation_payload())

        response = client.delete('/api/allocations/1')
        assert response.status_code == 200
        assert client.delete('/api/allocations/1').status_code == 404

        response = client.post('/api/allocations', json=allocation_payload())
        assert response.status_code == 201

    def test_log_actual_hours(self, client, team):
        client.post('/api/allocations', json=allocation_payload())

        response = client.post('/api/allocations/1/actual-hours', json={'hours': 6})
        assert response.status_code == 200
        assert response.get_json()['actual_hours'] == 6.0

        assert client.post('/api/allocations/1/actual-hours', json={}).status_code == 400


class TestReportRoutes:
    """Test conflict listing and reports"""

    def test_conflicts_after_absence(self, client, team):
        client.post('/api/allocations', json=allocation_payload())
        client.post('/api/team-members/dev1/availability', json={'date': '2024-01-03', 'type': 'sick'})

        response = client.get('/api/conflicts')
        assert response.status_code == 200

        data = response.get_json()
        assert len(data) == 1
        assert data[0]['team_member_id'] == 'dev1'
        assert data[0]['conflict_date'] == '2024-01-03'

        assert client.get('/api/conflicts?start_date=2024-01-04&end_date=2024-01-05').get_json() == []

    def test_capacity_report(self, client, team):
        client.post('/api/allocations', json=allocation_payload(allocated_hours=20))

        response = client.get('/api/reports/capacity?start_date=2024-01-01&end_date=2024-01-05')
        assert response.status_code == 200

        data = response.get_json()
        assert data[0]['team_member_id'] == 'dev1'
        assert data[0]['utilization_rate'] == 50.0
        assert data[1]['utilization_rate'] == 0.0

    def test_capacity_report_requires_dates(self, client):
        response = client.get('/api/reports/capacity?start_date=2024-01-01')
        assert response.status_code == 400

    def test_workload_report(self, client, team):
        client.post('/api/allocations', json=allocation_payload())

        response = client.get('/api/reports/workload?start_date=2024-01-01&end_date=2024-01-14')
        assert response.status_code == 200

        data = response.get_json()
        assert len(data) == 2
        assert data[0]['total_allocated'] == 40.0
        assert data[1]['total_allocated'] == 0.0

        response = client.get('/api/reports/workload?start_date=2024-01-01&end_date=2024-02-29&interval=month')
        assert [bucket['period_end'] for bucket in response.get_json()] == ['2024-01-31', '2024-02-29']

        response = client.get('/api/reports/workload?start_date=2024-01-01&end_date=2024-01-14&interval=day')
        assert response.status_code == 400


class TestTimelineRoutes:
    """Test project timeline endpoints"""

    def timeline_payload(self):
        return {
            'phases': [
                {'id': 'p1', 'name': 'Discovery', 'start_date': '2024-01-01', 'end_date': '2024-01-07', 'progress': 100},
                {'id': 'p2', 'name': 'Build', 'start_date': '2024-01-08', 'end_date': '2024-01-19', 'tasks': ['API']},
            ],
            'milestones': [{'id': 'm1', 'name': 'Design sign-off', 'due_date': '2024-01-05'}],
            'dependencies': [{'id': 'd1', 'from_task_id': 'p1', 'to_task_id': 'p2', 'type': 'finish_to_start'}]
        }

    def test_create_and_get_timeline(self, client, team):
        response = client.post('/api/projects/proj1/timeline', json=self.timeline_payload())
        assert response.status_code == 201

        data = response.get_json()
        assert data['start_date'] == '2024-01-01'
        assert data['end_date'] == '2024-01-19'
        assert len(data['milestones']) == 1

        response = client.get('/api/projects/proj1/timeline')
        assert response.status_code == 200
        assert [phase['id'] for phase in response.get_json()['phases']] == ['p1', 'p2']
        assert response.get_json()['overdue_milestones'] == []

    def test_overdue_milestones(self, client, team):
        payload = self.timeline_payload()
        payload['milestones'].append({'id': 'm0', 'name': 'Kickoff', 'due_date': '2024-01-02'})
        client.post('/api/projects/proj1/timeline', json=payload)

        response = client.get('/api/projects/proj1/timeline')
        assert response.get_json()['overdue_milestones'] == ['m0']

    def test_completed_milestone(self, client, team):
        payload = self.timeline_payload()
        payload['milestones'][0]['completed_date'] = '2024-01-04'
        assert client.post('/api/projects/proj1/timeline', json=payload).status_code == 201

        data = client.get('/api/projects/proj1/timeline').get_json()
        assert data['milestones'][0]['completed_date'] == '2024-01-04'
        assert data['milestones'][0]['status'] == 'completed'

    def test_timeline_not_found(self, client, team):
        assert client.get('/api/projects/proj2/timeline').status_code == 404

    def test_timeline_validation(self, client, team):
        response = client.post('/api/projects/proj1/timeline', json={'phases': []})
        assert response.status_code == 400

        payload = self.timeline_payload()
        payload['dependencies'][0]['lag'] = 'soon'
        assert client.post('/api/projects/proj1/timeline', json=payload).status_code == 400

    def test_phase_workload(self, client, team):
        client.post('/api/projects/proj1/timeline', json=self.timeline_payload())
        client.post('/api/allocations', json=allocation_payload(end_date='2024-01-12', allocated_hours=60))

        response = client.get('/api/projects/proj1/timeline/workload')
        assert response.status_code == 200

        data = response.get_json()
        assert [phase['allocated_hours'] for phase in data['phases']] == [30.0, 30.0]
        assert data['unphased_hours'] == 0.0


if __name__ == '__main__':
    pytest.main([__file__])
