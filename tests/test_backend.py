from datetime import date

import pytest

from backend import (
    SupabaseConnection, UserManager, ProjectManager, WorkerManager,
    ManpowerManager, RevenueManager,
)

CPO = {'id': 'admin', 'role': 'CPO'}


class TestConnection:
    def test_missing_config_raises(self, monkeypatch):
        monkeypatch.setattr(SupabaseConnection, '_instance', None)
        monkeypatch.setattr(SupabaseConnection, '_read_config', staticmethod(lambda: (None, None)))
        with pytest.raises(RuntimeError, match="Missing Supabase configuration"):
            SupabaseConnection.get_client()


class TestUsers:
    def test_sign_in_loads_existing_profile(self, fake_client):
        fake_client.tables['user_profiles'] = [{'id': 'u1', 'email': 'pm@eluo.kr', 'role': 'PM'}]
        fake_client.auth.add_user('u1', 'pm@eluo.kr', 'secret1')

        ok, _, profile = UserManager(fake_client).sign_in('pm@eluo.kr', 'secret1')

        assert ok
        assert profile['role'] == 'PM'
        assert fake_client.writes('user_profiles') == []

    def test_sign_in_creates_client_profile(self, fake_client):
        fake_client.auth.add_user('u2', 'new@eluo.kr', 'secret1')

        ok, _, profile = UserManager(fake_client).sign_in('new@eluo.kr', 'secret1')

        assert ok
        assert profile['role'] == 'CLIENT'
        assert [p['id'] for p in fake_client.tables['user_profiles']] == ['u2']

    def test_sign_in_wrong_password(self, fake_client):
        fake_client.auth.add_user('u1', 'pm@eluo.kr', 'secret1')

        ok, message, profile = UserManager(fake_client).sign_in('pm@eluo.kr', 'wrong!')

        assert not ok
        assert profile is None
        assert message.startswith("Sign-in failed")

    def test_sign_out(self, fake_client):
        UserManager(fake_client).sign_out()
        assert fake_client.auth.signed_out

    def test_profiles_newest_first(self, fake_client):
        fake_client.tables['user_profiles'] = [
            {'id': 'a', 'role': 'PM', 'created_at': '2024-01-01T00:00:00'},
            {'id': 'b', 'role': 'PA', 'created_at': '2024-03-01T00:00:00'},
        ]
        assert [p['id'] for p in UserManager(fake_client).get_all_profiles()] == ['b', 'a']

    def test_cpo_changes_role(self, fake_client):
        fake_client.tables['user_profiles'] = [{'id': 'u1', 'role': 'CLIENT'}]

        ok, _ = UserManager(fake_client).change_role(CPO, 'u1', 'BD')

        assert ok
        assert fake_client.tables['user_profiles'][0]['role'] == 'BD'
        assert fake_client.rpc_calls == [('update_user_role', {'user_id': 'u1', 'new_role': 'BD'})]

    @pytest.mark.parametrize('actor, role', [
        ({'id': 'x', 'role': 'BD'}, 'PM'),
        (None, 'PM'),
        (CPO, 'ADMIN'),
    ])
    def test_change_role_rejected(self, fake_client, actor, role):
        fake_client.tables['user_profiles'] = [{'id': 'u1', 'role': 'CLIENT'}]

        ok, _ = UserManager(fake_client).change_role(actor, 'u1', role)

        assert not ok
        assert fake_client.tables['user_profiles'][0]['role'] == 'CLIENT'
        assert fake_client.rpc_calls == []

    def test_permissions(self):
        assert UserManager.has_permission('CPO', 'anything')
        assert UserManager.has_permission('PM', 'canEditProject')
        assert not UserManager.has_permission('PA', 'canEditProject')
        assert not UserManager.has_permission(None, 'canViewAll')
        assert UserManager.can_delete({'role': 'BD'})
        assert not UserManager.can_delete({'role': 'PM'})
        assert UserManager.can_edit_projects({'role': 'PM'})
        assert not UserManager.can_edit_projects({'role': 'CLIENT'})


@pytest.fixture
def projects(fake_client):
    fake_client.tables['projects'] = [
        {'id': 'p1', 'name': '쇼핑몰 구축', 'client': 'ACME Corp', 'status': '진행중',
         'start_date': '2024-01-01', 'end_date': '2024-01-11', 'budget': 1000000, 'created_at': '2024-01-01'},
        {'id': 'p2', 'name': '사내 포털', 'client': '이루오', 'status': '완료',
         'start_date': None, 'end_date': None, 'budget': None, 'created_at': '2024-02-01'},
        {'id': 'p3', 'name': 'ACME 앱', 'client': '다른고객', 'status': '준비중',
         'start_date': None, 'end_date': None, 'budget': None, 'created_at': '2024-03-01'},
    ]
    return ProjectManager(fake_client)


class TestProjects:
    def test_newest_first(self, projects):
        assert [p['id'] for p in projects.get_projects()] == ['p3', 'p2', 'p1']

    def test_status_filter(self, projects):
        assert [p['id'] for p in projects.get_projects(status='완료')] == ['p2']

    def test_search_matches_name_or_client(self, projects):
        assert [p['id'] for p in projects.get_projects(search='acme')] == ['p3', 'p1']

    def test_search_combined_with_status(self, projects):
        assert [p['id'] for p in projects.get_projects(status='진행중', search='ACME')] == ['p1']

    def test_search_ignores_filter_syntax(self, projects):
        assert [p['id'] for p in projects.get_projects(search='(포털)')] == ['p2']

    def test_create(self, projects, fake_client):
        ok, _ = projects.create_project({'name': '신규', 'contract_amount': '5,000,000'}, created_by='u1')

        assert ok
        row = fake_client.tables['projects'][-1]
        assert row['created_by'] == 'u1'
        assert row['status'] == '준비중'
        assert row['contract_amount'] == 5_000_000

    def test_create_invalid_writes_nothing(self, projects, fake_client):
        ok, message = projects.create_project({'name': 'A', 'start_date': '2024-02-01', 'end_date': '2024-01-01'}, 'u1')

        assert not ok
        assert 'End date' in message
        assert fake_client.writes('projects') == []

    def test_update_status(self, projects, fake_client):
        assert projects.update_status('p3', '진행중')[0]
        assert fake_client.tables['projects'][2]['status'] == '진행중'
        assert not projects.update_status('p3', '폐기')[0]

    def test_delete_requires_role(self, projects, fake_client):
        ok, _ = projects.delete_project('p1', 'PM')

        assert not ok
        assert len(fake_client.tables['projects']) == 3

    def test_delete_removes_manpower(self, projects, fake_client):
        fake_client.tables['project_manpower'] = [
            {'project_id': 'p1', 'worker_id': 'w1'},
            {'project_id': 'p2', 'worker_id': 'w1'},
        ]

        ok, _ = projects.delete_project('p1', 'BD')

        assert ok
        assert [p['id'] for p in fake_client.tables['projects']] == ['p2', 'p3']
        assert fake_client.tables['project_manpower'] == [{'project_id': 'p2', 'worker_id': 'w1'}]

    def test_delete_refreshes_monthly_records(self, projects, fake_client):
        fake_client.tables['project_manpower'] = [
            {'project_id': 'p1', 'worker_id': 'w1', 'monthly_efforts': {'2024-01': 0.7}},
            {'project_id': 'p2', 'worker_id': 'w1', 'monthly_efforts': {'2024-01': 0.2}},
        ]
        fake_client.tables['worker_mm_records'] = [{'worker_id': 'w1', 'year': 2024, 'month': 1, 'mm_value': 0.9}]

        assert projects.delete_project('p1', 'CPO')[0]

        assert fake_client.tables['worker_mm_records'] == [{'worker_id': 'w1', 'year': 2024, 'month': 1, 'mm_value': 0.2}]

    def test_update(self, projects, fake_client):
        ok, _ = projects.update_project('p2', {'name': '사내 포털 2차', 'client': '이루오', 'status': '진행중'})

        assert ok
        row = next(p for p in fake_client.tables['projects'] if p['id'] == 'p2')
        assert row['name'] == '사내 포털 2차'
        assert row['status'] == '진행중'

    def test_update_invalid_writes_nothing(self, projects, fake_client):
        ok, message = projects.update_project('p2', {'name': ''})

        assert not ok
        assert 'required' in message
        assert fake_client.writes('projects') == []
        assert fake_client.tables['projects'][1]['name'] == '사내 포털'

    def test_read_failure_returns_empty(self, projects, fake_client):
        fake_client.fail_tables.add('projects')
        assert projects.get_projects() == []
        assert projects.get_project('p1') is None

    def test_report(self, projects):
        df = ProjectManager.to_report(projects.get_projects(), today=date(2024, 1, 6))

        assert df.columns.tolist() == ['name', 'client', 'start_date', 'end_date', 'status', 'budget', 'progress']
        by_name = df.set_index('name')
        assert by_name.loc['쇼핑몰 구축', 'progress'] == 50.0
        assert by_name.loc['쇼핑몰 구축', 'budget'] == '1,000,000원'
        assert by_name.loc['사내 포털', 'end_date'] == '-'


@pytest.fixture
def workers(fake_client):
    fake_client.tables['workers'] = [
        {'id': 'w1', 'name': '홍길동', 'job_type': '개발', 'deleted_at': None},
        {'id': 'w2', 'name': '김철수', 'job_type': '기획', 'deleted_at': None},
        {'id': 'w3', 'name': '퇴사자', 'job_type': '디자인', 'deleted_at': '2024-01-01T00:00:00'},
    ]
    return WorkerManager(fake_client)


class TestWorkers:
    def test_deleted_workers_hidden(self, workers):
        assert [w['name'] for w in workers.get_workers()] == ['김철수', '홍길동']
        assert len(workers.get_workers(include_deleted=True)) == 3

    def test_available_excludes_assigned(self, workers, fake_client):
        fake_client.tables['project_manpower'] = [{'project_id': 'p1', 'worker_id': 'w1'}]
        assert [w['id'] for w in workers.get_available_workers()] == ['w2']

    def test_blank_price_uses_default(self, workers, fake_client):
        ok, _ = workers.create_worker({'name': ' 이영희 ', 'grade': 'PM', 'level': '고급', 'price': ''})

        assert ok
        row = fake_client.tables['workers'][-1]
        assert row['name'] == '이영희'
        assert row['price'] == 9_000_000
        assert row['is_dispatched'] is False

    def test_typed_price_wins(self, workers, fake_client):
        workers.create_worker({'name': '이영희', 'grade': 'PM', 'level': '고급', 'price': '7,000,000'})
        assert fake_client.tables['workers'][-1]['price'] == 7_000_000

    def test_duplicate_name_rejected(self, workers, fake_client):
        ok, message = workers.create_worker({'name': '홍길동'})

        assert not ok
        assert '홍길동' in message
        assert fake_client.writes('workers') == []

    def test_deleted_name_can_be_reused(self, workers):
        assert workers.create_worker({'name': '퇴사자'})[0]

    def test_unknown_level_rejected(self, workers):
        ok, message = workers.create_worker({'name': '새사람', 'level': '신입'})
        assert not ok
        assert 'level' in message

    def test_bulk_duplicates_get_suggestions(self, workers, fake_client):
        ok, _, suggestions = workers.create_workers_bulk([
            {'name': '박민수'}, {'name': '박민수'}, {'name': '홍길동'}, {'name': '최지은'},
        ])

        assert not ok
        assert suggestions == {0: '박민수2', 1: '박민수3', 2: '홍길동2'}
        assert fake_client.writes('workers') == []

    def test_bulk_blank_name(self, workers):
        ok, message, _ = workers.create_workers_bulk([{'name': '박민수'}, {'name': ' '}])
        assert not ok
        assert message == "Every worker needs a name."

    def test_bulk_insert(self, workers, fake_client):
        ok, message, suggestions = workers.create_workers_bulk([
            {'name': '박민수', 'level': '중급', 'grade': 'PA'},
            {'name': '최지은', 'price': '4,000,000'},
        ])

        assert ok
        assert message == "2 workers registered."
        assert suggestions == {}
        assert fake_client.writes('workers') == ['insert']
        prices = {w['name']: w.get('price') for w in fake_client.tables['workers']}
        assert prices['박민수'] == 6_500_000
        assert prices['최지은'] == 4_000_000

    def test_soft_delete_and_restore(self, workers, fake_client):
        assert not workers.soft_delete_worker('w1', 'PA')[0]
        assert workers.soft_delete_worker('w1', 'CPO')[0]
        assert 'w1' not in [w['id'] for w in workers.get_workers()]

        assert workers.restore_worker('w1')[0]
        assert 'w1' in [w['id'] for w in workers.get_workers()]

    def test_update(self, workers, fake_client):
        ok, _ = workers.update_worker('w2', {'name': '김철수', 'job_type': '개발', 'grade': 'PL', 'level': '중급', 'price': ''})

        assert ok
        row = next(w for w in fake_client.tables['workers'] if w['id'] == 'w2')
        assert row['job_type'] == '개발'
        assert row['price'] == 7_000_000

    def test_update_invalid_writes_nothing(self, workers, fake_client):
        ok, message = workers.update_worker('w2', {'name': '김철수', 'grade': 'CEO'})

        assert not ok
        assert 'grade' in message
        assert fake_client.writes('workers') == []

    def test_read_failure_returns_empty(self, workers, fake_client):
        fake_client.fail_tables.add('workers')
        assert workers.get_workers() == []

    def test_name_lookup_failure_blocks_create(self, workers, fake_client):
        fake_client.fail_tables.add('workers')

        ok, message = workers.create_worker({'name': '새사람'})

        assert not ok
        assert message.startswith("Error creating worker")


@pytest.fixture
def manpower(fake_client):
    fake_client.tables['workers'] = [{'id': 'w1', 'name': '홍길동', 'job_type': '기획'}]
    fake_client.tables['project_manpower'] = [
        {'project_id': 'p1', 'worker_id': 'w1', 'monthly_efforts': {'2024-01': 0.6}},
    ]
    return ManpowerManager(fake_client)


ENTRY = {
    'worker_id': 'w1',
    'role': '기획',
    'grade': '고급',
    'unit_price': '5,000,000',
    'monthly_efforts': {'2024-01': '0.5', '2024-02': '0.3'},
}


class TestManpower:
    def test_save_computes_totals(self, manpower, fake_client):
        ok, _, _ = manpower.save_manpower('p2', [ENTRY])

        assert ok
        row = next(r for r in fake_client.tables['project_manpower'] if r['project_id'] == 'p2')
        assert row['monthly_efforts'] == {'2024-01': 0.5, '2024-02': 0.3}
        assert row['total_effort'] == 0.8
        assert row['total_cost'] == 4_000_000

    def test_over_allocation_warns_but_saves(self, manpower, fake_client):
        ok, message, warnings = manpower.save_manpower('p2', [ENTRY])

        assert ok
        assert warnings == [('w1', '2024-01', 1.1)]
        assert message == "Saved, but 1 month(s) exceed 1.0 M/M."

    def test_mm_records_written(self, manpower, fake_client):
        manpower.save_manpower('p2', [ENTRY])

        records = {(r['year'], r['month']): r['mm_value'] for r in fake_client.tables['worker_mm_records']}
        assert records == {(2024, 1): 1.1, (2024, 2): 0.3}

    def test_saving_again_updates_in_place(self, manpower, fake_client):
        manpower.save_manpower('p2', [ENTRY])
        ok, message, warnings = manpower.save_manpower('p2', [{**ENTRY, 'monthly_efforts': {'2024-01': '0.2'}}])

        assert ok
        assert message == "Manpower saved."
        assert warnings == []
        assert len(fake_client.tables['project_manpower']) == 2
        assert len(fake_client.tables['worker_mm_records']) == 2
        january = next(r for r in fake_client.tables['worker_mm_records'] if r['month'] == 1)
        assert january['mm_value'] == 0.8

    def test_dropped_month_is_zeroed(self, manpower, fake_client):
        manpower.save_manpower('p2', [ENTRY])
        manpower.save_manpower('p2', [{**ENTRY, 'monthly_efforts': {'2024-01': '0.5'}}])

        records = {(r['year'], r['month']): r['mm_value'] for r in fake_client.tables['worker_mm_records']}
        assert records == {(2024, 1): 1.1, (2024, 2): 0.0}

    @pytest.mark.parametrize('effort', ['1.5', 'nan', 'inf'])
    def test_invalid_effort_writes_nothing(self, manpower, fake_client, effort):
        ok, message, _ = manpower.save_manpower('p2', [{**ENTRY, 'monthly_efforts': {'2024-01': effort}}])

        assert not ok
        assert 'between 0 and 1' in message
        assert fake_client.writes('project_manpower') == []

    def test_missing_worker(self, manpower):
        ok, message, _ = manpower.save_manpower('p2', [{'monthly_efforts': {}}])
        assert not ok
        assert message == "Worker is required."

    def test_empty(self, manpower):
        assert manpower.save_manpower('p2', []) == (False, "No manpower to save.", [])

    def test_write_failure(self, manpower, fake_client):
        fake_client.fail_tables.add('project_manpower')
        ok, message, _ = manpower.save_manpower('p2', [ENTRY])
        assert not ok
        assert message.startswith("Error saving manpower")

    def test_project_manpower_includes_worker(self, manpower):
        rows = manpower.get_project_manpower('p1')
        assert rows[0]['workers']['name'] == '홍길동'

    def test_remove(self, manpower, fake_client):
        assert manpower.remove_manpower('p1', 'w1')[0]
        assert fake_client.tables['project_manpower'] == []

    def test_remove_refreshes_monthly_records(self, manpower, fake_client):
        manpower.save_manpower('p2', [ENTRY])

        assert manpower.remove_manpower('p2', 'w1')[0]

        records = {(r['year'], r['month']): r['mm_value'] for r in fake_client.tables['worker_mm_records']}
        assert records == {(2024, 1): 0.6, (2024, 2): 0.0}

    def test_worker_records_by_year(self, manpower, fake_client):
        fake_client.tables['worker_mm_records'] = [
            {'worker_id': 'w1', 'year': 2024, 'month': 2, 'mm_value': 0.3},
            {'worker_id': 'w1', 'year': 2024, 'month': 1, 'mm_value': 0.5},
            {'worker_id': 'w1', 'year': 2023, 'month': 12, 'mm_value': 1.0},
        ]
        records = manpower.get_worker_mm_records('w1', 2024)
        assert [r['month'] for r in records] == [1, 2]

    def test_report(self, manpower):
        manpower.save_manpower('p2', [ENTRY])
        df = ManpowerManager.to_report(manpower.get_project_manpower('p2'), ['2024-01', '2024-02', '2024-03'])

        assert df.columns.tolist() == [
            'worker', 'role', 'grade', 'unit_price',
            '2024년 1월', '2024년 2월', '2024년 3월', 'total_effort', 'total_cost',
        ]
        row = df.iloc[0]
        assert row['worker'] == '홍길동'
        assert row['2024년 3월'] == 0.0
        assert row['total_cost'] == '4,000,000원'


@pytest.fixture
def revenue(fake_client):
    fake_client.tables['transactions'] = [
        {'id': 't1', 'transaction_date': '2024-01-15', 'amount': 30_000_000, 'transaction_type': 'income'},
        {'id': 't2', 'transaction_date': '2024-02-03', 'amount': 20_000_000, 'transaction_type': 'income'},
        {'id': 't3', 'transaction_date': '2024-02-20', 'amount': 10_000_000, 'transaction_type': 'expense'},
        {'id': 't4', 'transaction_date': '2023-05-01', 'amount': 40_000_000, 'transaction_type': 'income'},
        {'id': 't5', 'transaction_date': '2021-05-01', 'amount': 99_000_000, 'transaction_type': 'income'},
    ]
    return RevenueManager(fake_client)


class TestRevenue:
    def test_dashboard(self, revenue):
        dashboard = revenue.get_dashboard(2024, today=date(2024, 2, 15), recent_limit=2)

        assert dashboard['monthly']['amount'].tolist()[:3] == [30_000_000, 20_000_000, 0]
        assert dashboard['split'] == {'income': 50_000_000, 'expense': 10_000_000}
        assert dashboard['settlement']['last_year'] == 40_000_000
        assert dashboard['settlement']['year_change'] == 25.0
        assert [t['id'] for t in dashboard['recent']] == ['t3', 't2']

    def test_past_year_keeps_current_settlement(self, revenue, fake_client):
        fake_client.tables['transactions'] += [
            {'id': 't6', 'transaction_date': '2026-10-01', 'amount': 50, 'transaction_type': 'income'},
            {'id': 't7', 'transaction_date': '2025-06-01', 'amount': 100, 'transaction_type': 'income'},
        ]

        dashboard = revenue.get_dashboard(2024, today=date(2026, 10, 19))

        assert dashboard['monthly']['amount'].tolist()[:2] == [30_000_000, 20_000_000]
        assert dashboard['settlement']['this_month'] == 50
        assert dashboard['settlement']['this_year'] == 50
        assert dashboard['settlement']['last_year'] == 100
        assert dashboard['settlement']['year_change'] == -50.0
        assert 't6' not in [t['id'] for t in dashboard['recent']]

    def test_filter_by_type_and_range(self, revenue):
        rows = revenue.get_transactions(date(2024, 1, 1), date(2024, 12, 31), 'income')
        assert [t['id'] for t in rows] == ['t2', 't1']

    @pytest.mark.parametrize('data', [
        {'transaction_type': 'refund', 'amount': 1, 'transaction_date': '2024-01-01'},
        {'transaction_type': 'income', 'amount': 0, 'transaction_date': '2024-01-01'},
        {'transaction_type': 'income', 'amount': 100, 'transaction_date': None},
        {'transaction_type': 'income', 'amount': 'abc', 'transaction_date': '2024-01-01'},
        {'transaction_type': 'income', 'amount': -100, 'transaction_date': '2024-01-01'},
        {'transaction_type': 'income', 'amount': None, 'transaction_date': '2024-01-01'},
    ])
    def test_add_rejects_invalid(self, revenue, fake_client, data):
        assert not revenue.add_transaction(data, 'u1')[0]
        assert fake_client.writes('transactions') == []

    def test_add(self, revenue, fake_client):
        data = {'transaction_type': 'expense', 'amount': '1,500', 'transaction_date': '2024-03-01', 'notes': '서버'}

        ok, message = revenue.add_transaction(data, 'u1')

        assert ok
        assert message == "Expense added."
        row = fake_client.tables['transactions'][-1]
        assert row['created_by'] == 'u1'
        assert row['amount'] == 1500
        assert 'created_by' not in data
        assert data['amount'] == '1,500'

    def test_delete_requires_role(self, revenue, fake_client):
        assert not revenue.delete_transaction('t1', 'PM')[0]
        assert revenue.delete_transaction('t1', 'CPO')[0]
        assert 't1' not in [t['id'] for t in fake_client.tables['transactions']]
