# backend.py
import os
import logging
from datetime import datetime, date
from typing import Optional, List, Dict, Any, Set, Tuple
from supabase import create_client, Client
import streamlit as st
import pandas as pd

from calculations import (
    PROJECT_STATUSES, JOB_TYPES, WORKER_LEVELS, WORKER_GRADES, WORKER_TYPES,
    build_project_payload, validate_project, default_unit_price, parse_amount,
    find_duplicate_names, suggest_distinct_name, parse_effort, total_effort,
    total_cost, aggregate_monthly_effort, over_allocated, mm_records, months_by_worker,
    month_label, format_amount, progress_percent, monthly_revenue,
    income_expense_split, settlement_summary,
)

logger = logging.getLogger(__name__)

ROLES = ['CPO', 'BD', 'PM', 'PA', 'CLIENT']

ROLE_PERMISSIONS = {
    'CPO': {
        'canViewAll': True,
        'canEditAll': True,
        'canDeleteAll': True,
        'canManageUsers': True,
    },
    'BD': {
        'canViewAll': True,
        'canEditBusiness': True,
        'canViewReports': True,
    },
    'PM': {
        'canViewProjects': True,
        'canManageTeam': True,
        'canEditProject': True,
    },
    'PA': {
        'canViewAssignedTasks': True,
        'canUpdateTaskStatus': True,
    },
    'CLIENT': {
        'canViewOwnProjects': True,
        'canSubmitFeedback': True,
    },
}

# Roles allowed to delete projects, workers and transactions
DELETE_ROLES = ['CPO', 'BD']


# ============================================
# SUPABASE CONNECTION (Singleton)
# ============================================
class SupabaseConnection:
    """Handles Supabase client connection using Streamlit secrets or the environment."""

    _instance: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        """Returns a Supabase client instance (singleton)."""
        if cls._instance is None:
            url, key = cls._read_config()
            if not url or not key:
                raise RuntimeError("Missing Supabase configuration")
            cls._instance = create_client(url, key)
        return cls._instance

    @staticmethod
    def _read_config() -> Tuple[Optional[str], Optional[str]]:
        url = key = None
        try:
            url = st.secrets.get("SUPABASE_URL")
            key = st.secrets.get("SUPABASE_KEY")
        except FileNotFoundError:
            logger.info("No secrets.toml found, using environment variables")
        return url or os.environ.get("SUPABASE_URL"), key or os.environ.get("SUPABASE_KEY")


def _now() -> str:
    return datetime.now().isoformat()


# ============================================
# USER MANAGER
# ============================================
class UserManager:
    """Sign-in through Supabase Auth, user profiles and role checks."""

    def __init__(self, client: Optional[Client] = None):
        self.supabase = client or SupabaseConnection.get_client()

    def sign_in(self, email: str, password: str) -> Tuple[bool, str, Optional[Dict]]:
        """
        Password sign-in via Supabase Auth, then load the caller's profile.
        A user without a profile row gets one with the CLIENT role.
        """
        try:
            response = self.supabase.auth.sign_in_with_password({'email': email, 'password': password})
            user = response.user
            if user is None:
                return False, "Invalid email or password.", None
            profile = self.get_profile(user.id)
            if profile is None:
                profile = {
                    'id': user.id,
                    'email': user.email,
                    'role': 'CLIENT',
                    'created_at': _now(),
                    'updated_at': _now(),
                }
                self.supabase.table('user_profiles').insert(profile).execute()
                logger.info("Created CLIENT profile for %s", user.id)
            return True, "Signed in.", profile
        except Exception as e:
            logger.exception("Sign-in failed for %s", email)
            return False, f"Sign-in failed: {e}", None

    def sign_out(self) -> None:
        try:
            self.supabase.auth.sign_out()
        except Exception:
            logger.exception("Sign-out failed")

    def get_profile(self, user_id: str) -> Optional[Dict]:
        try:
            response = self.supabase.table('user_profiles')\
                .select('*')\
                .eq('id', user_id)\
                .execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.exception("Error fetching profile %s", user_id)
            st.error(f"Error fetching profile: {e}")
            return None

    def get_all_profiles(self) -> List[Dict]:
        """Return all user profiles, newest first."""
        try:
            response = self.supabase.table('user_profiles')\
                .select('*')\
                .order('created_at', desc=True)\
                .execute()
            return response.data
        except Exception as e:
            logger.exception("Error fetching users")
            st.error(f"Error fetching users: {e}")
            return []

    def change_role(self, actor: Dict, user_id: str, new_role: str) -> Tuple[bool, str]:
        """CPO only: update the profile role and the auth metadata (RPC update_user_role)."""
        if not self.can_manage_users(actor):
            return False, "Permission denied: only CPO can change roles."
        if new_role not in ROLES:
            return False, f"Unknown role: {new_role}"
        try:
            self.supabase.table('user_profiles')\
                .update({'role': new_role, 'updated_at': _now()})\
                .eq('id', user_id)\
                .execute()
            self.supabase.rpc('update_user_role', {'user_id': user_id, 'new_role': new_role}).execute()
            logger.info("Role of %s changed to %s by %s", user_id, new_role, actor['id'])
            return True, "Role updated."
        except Exception as e:
            logger.exception("Error changing role of %s", user_id)
            return False, f"Error changing role: {e}"

    # Role-based permission helpers
    @staticmethod
    def has_permission(role: Optional[str], permission: str) -> bool:
        if role == 'CPO':
            return True
        return ROLE_PERMISSIONS.get(role, {}).get(permission, False)

    @staticmethod
    def can_manage_users(user: Optional[Dict]) -> bool:
        return bool(user) and user.get('role') == 'CPO'

    @staticmethod
    def can_delete(user: Optional[Dict]) -> bool:
        return bool(user) and user.get('role') in DELETE_ROLES

    @staticmethod
    def can_edit_projects(user: Optional[Dict]) -> bool:
        return bool(user) and user.get('role') in ['CPO', 'BD', 'PM']


# ============================================
# PROJECT MANAGER
# ============================================
PROJECT_COLUMNS = (
    'id, name, client, status, major_category, category, start_date, end_date, '
    'budget, description, contract_amount, is_vat_included, common_expense, '
    'contract_type, contract_details, created_at'
)


class ProjectManager:
    """Project list, search, create/update and report export."""

    def __init__(self, client: Optional[Client] = None):
        self.supabase = client or SupabaseConnection.get_client()

    def get_projects(self, status: str = 'all', search: str = '') -> List[Dict]:
        """
        Projects newest first. status='all' disables the status filter;
        search matches name or client, case-insensitive.
        """
        try:
            query = self.supabase.table('projects')\
                .select(PROJECT_COLUMNS)\
                .order('created_at', desc=True)
            if status != 'all':
                query = query.eq('status', status)
            term = ''.join(ch for ch in (search or '').strip() if ch not in ',()')
            if term:
                query = query.or_(f"name.ilike.%{term}%,client.ilike.%{term}%")
            response = query.execute()
            return response.data or []
        except Exception as e:
            logger.exception("Error fetching projects")
            st.error(f"Error fetching projects: {e}")
            return []

    def get_project(self, project_id: str) -> Optional[Dict]:
        try:
            response = self.supabase.table('projects').select(PROJECT_COLUMNS).eq('id', project_id).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.exception("Error fetching project %s", project_id)
            st.error(f"Error fetching project: {e}")
            return None

    def create_project(self, form: Dict, created_by: str) -> Tuple[bool, str]:
        """Validate the form and insert a project."""
        try:
            payload = build_project_payload(form)
        except ValueError as e:
            return False, str(e)
        ok, reason = validate_project(payload)
        if not ok:
            return False, reason
        try:
            payload['created_by'] = created_by
            payload['created_at'] = _now()
            payload['updated_at'] = _now()
            response = self.supabase.table('projects').insert(payload).execute()
            logger.info("Project created: %s", response.data[0].get('id') if response.data else payload['name'])
            return True, "Project created."
        except Exception as e:
            logger.exception("Error creating project")
            return False, f"Error creating project: {e}"

    def update_project(self, project_id: str, form: Dict) -> Tuple[bool, str]:
        try:
            payload = build_project_payload(form)
        except ValueError as e:
            return False, str(e)
        ok, reason = validate_project(payload)
        if not ok:
            return False, reason
        try:
            payload['updated_at'] = _now()
            self.supabase.table('projects')\
                .update(payload)\
                .eq('id', project_id)\
                .execute()
            logger.info("Project updated: %s", project_id)
            return True, "Project updated."
        except Exception as e:
            logger.exception("Error updating project %s", project_id)
            return False, f"Error updating project: {e}"

    def update_status(self, project_id: str, status: str) -> Tuple[bool, str]:
        if status not in PROJECT_STATUSES:
            return False, f"Unknown status: {status}"
        try:
            self.supabase.table('projects')\
                .update({'status': status, 'updated_at': _now()})\
                .eq('id', project_id)\
                .execute()
            return True, f"Status changed to {status}."
        except Exception as e:
            logger.exception("Error updating status of %s", project_id)
            return False, f"Error updating status: {e}"

    def delete_project(self, project_id: str, user_role: str) -> Tuple[bool, str]:
        """
        Delete a project and its manpower assignments, then refresh the
        monthly M/M records of every worker who was assigned. Only CPO or BD allowed.
        """
        if user_role not in DELETE_ROLES:
            return False, "Permission denied: only CPO or BD can delete."
        try:
            assigned = self.supabase.table('project_manpower')\
                .select('worker_id, monthly_efforts')\
                .eq('project_id', project_id)\
                .execute()
            self.supabase.table('project_manpower').delete().eq('project_id', project_id).execute()
            self.supabase.table('projects').delete().eq('id', project_id).execute()
            ManpowerManager(self.supabase).refresh_mm_records(months_by_worker(assigned.data or []))
            logger.info("Project deleted: %s", project_id)
            return True, "Project deleted."
        except Exception as e:
            logger.exception("Error deleting project %s", project_id)
            return False, f"Error deleting project: {e}"

    @staticmethod
    def to_report(projects: List[Dict], today: Optional[date] = None) -> pd.DataFrame:
        """Display table for a project list: formatted budget, progress as 0-100 (None without dates)."""
        rows = []
        for p in projects:
            progress = progress_percent(p.get('start_date'), p.get('end_date'), today)
            rows.append({
                'name': p['name'],
                'client': p.get('client') or '',
                'start_date': p.get('start_date') or '-',
                'end_date': p.get('end_date') or '-',
                'status': p['status'],
                'budget': format_amount(p.get('budget')),
                'progress': progress,
            })
        return pd.DataFrame(rows, columns=['name', 'client', 'start_date', 'end_date', 'status', 'budget', 'progress'])


# ============================================
# WORKER MANAGER
# ============================================
class WorkerManager:
    """Workers: listing, single and bulk registration, soft delete."""

    def __init__(self, client: Optional[Client] = None):
        self.supabase = client or SupabaseConnection.get_client()

    def get_workers(self, include_deleted: bool = False) -> List[Dict]:
        """Return workers ordered by name; soft-deleted ones only on request."""
        try:
            query = self.supabase.table('workers').select('*')
            if not include_deleted:
                query = query.is_('deleted_at', 'null')
            response = query.order('name').execute()
            return response.data or []
        except Exception as e:
            logger.exception("Error fetching workers")
            st.error(f"Error fetching workers: {e}")
            return []

    def get_available_workers(self) -> List[Dict]:
        """Workers that are not assigned to any project."""
        try:
            workers = self.get_workers()
            assigned = self.supabase.table('project_manpower').select('worker_id').execute()
            assigned_ids = {row['worker_id'] for row in assigned.data if row.get('worker_id')}
            return [w for w in workers if w['id'] not in assigned_ids]
        except Exception as e:
            logger.exception("Error fetching available workers")
            st.error(f"Error fetching available workers: {e}")
            return []

    def get_existing_names(self, names: List[str]) -> List[str]:
        """
        Names from the list that already belong to a (not deleted) worker.
        Raises on backend errors: a failed lookup must not pass as "no duplicates",
        so callers catch and report the failure.
        """
        names = [n.strip() for n in names if n and n.strip()]
        if not names:
            return []
        response = self.supabase.table('workers')\
            .select('name')\
            .in_('name', names)\
            .is_('deleted_at', 'null')\
            .execute()
        return [row['name'] for row in response.data]

    @staticmethod
    def _validate(data: Dict) -> Tuple[bool, str]:
        if not (data.get('name') or '').strip():
            return False, "Worker name is required."
        for field, allowed in (('job_type', JOB_TYPES), ('level', WORKER_LEVELS),
                               ('grade', WORKER_GRADES), ('worker_type', WORKER_TYPES)):
            value = data.get(field)
            if value and value not in allowed:
                return False, f"Unknown {field}: {value}"
        return True, ""

    @staticmethod
    def _normalize(data: Dict) -> Dict:
        row = dict(data)
        row['name'] = row['name'].strip()
        price = parse_amount(row.get('price'))
        if price is None:
            price = default_unit_price(row.get('grade'), row.get('level'))
        row['price'] = price
        row['is_dispatched'] = bool(row.get('is_dispatched', False))
        return row

    def create_worker(self, data: Dict) -> Tuple[bool, str]:
        """Register one worker. Price defaults from grade/level when left blank."""
        ok, reason = self._validate(data)
        if not ok:
            return False, reason
        try:
            row = self._normalize(data)
            if self.get_existing_names([row['name']]):
                return False, f"A worker named {row['name']} already exists."
            row['created_at'] = _now()
            self.supabase.table('workers').insert(row).execute()
            logger.info("Worker created: %s", row['name'])
            return True, "Worker registered."
        except ValueError as e:
            return False, str(e)
        except Exception as e:
            logger.exception("Error creating worker")
            return False, f"Error creating worker: {e}"

    def check_duplicates(self, rows: List[Dict]) -> Dict[int, str]:
        """
        Duplicate rows of a bulk batch, mapped to a suggested distinct name.
        Duplicates are names already registered or repeated within the batch.
        """
        names = [(r.get('name') or '').strip() for r in rows]
        existing = self.get_existing_names(names)
        flags = find_duplicate_names(names, existing)
        taken = set(existing) | set(names)
        suggestions = {}
        for index, is_duplicate in flags.items():
            if is_duplicate:
                suggestion = suggest_distinct_name(names[index], list(taken))
                taken.add(suggestion)
                suggestions[index] = suggestion
        return suggestions

    def create_workers_bulk(self, rows: List[Dict]) -> Tuple[bool, str, Dict[int, str]]:
        """
        Register several workers at once. Nothing is inserted while any name is
        blank or duplicated; duplicates come back with suggested names.
        """
        if not rows:
            return False, "No workers to add.", {}
        if any(not (r.get('name') or '').strip() for r in rows):
            return False, "Every worker needs a name.", {}
        for r in rows:
            ok, reason = self._validate(r)
            if not ok:
                return False, reason, {}
        try:
            duplicates = self.check_duplicates(rows)
            if duplicates:
                return False, "Duplicate names found. Add something to tell them apart.", duplicates
            now = _now()
            payload = []
            for r in rows:
                row = self._normalize(r)
                row['created_at'] = now
                payload.append(row)
            self.supabase.table('workers').insert(payload).execute()
            logger.info("Bulk-created %d workers", len(payload))
            return True, f"{len(payload)} workers registered.", {}
        except ValueError as e:
            return False, str(e), {}
        except Exception as e:
            logger.exception("Error creating workers")
            return False, f"Error creating workers: {e}", {}

    def update_worker(self, worker_id: str, data: Dict) -> Tuple[bool, str]:
        ok, reason = self._validate(data)
        if not ok:
            return False, reason
        try:
            row = self._normalize(data)
            self.supabase.table('workers')\
                .update(row)\
                .eq('id', worker_id)\
                .execute()
            return True, "Worker updated."
        except ValueError as e:
            return False, str(e)
        except Exception as e:
            logger.exception("Error updating worker %s", worker_id)
            return False, f"Error updating worker: {e}"

    def soft_delete_worker(self, worker_id: str, user_role: str) -> Tuple[bool, str]:
        """Soft delete: set deleted_at."""
        if user_role not in DELETE_ROLES:
            return False, "Permission denied."
        try:
            self.supabase.table('workers')\
                .update({'deleted_at': _now()})\
                .eq('id', worker_id)\
                .execute()
            return True, "Worker deleted."
        except Exception as e:
            logger.exception("Error deleting worker %s", worker_id)
            return False, f"Error deleting worker: {e}"

    def restore_worker(self, worker_id: str) -> Tuple[bool, str]:
        try:
            self.supabase.table('workers')\
                .update({'deleted_at': None})\
                .eq('id', worker_id)\
                .execute()
            return True, "Worker restored."
        except Exception as e:
            logger.exception("Error restoring worker %s", worker_id)
            return False, f"Error restoring worker: {e}"


# ============================================
# MANPOWER MANAGER
# ============================================
class ManpowerManager:
    """Per-project manpower (M/M) entries and the monthly totals per worker."""

    def __init__(self, client: Optional[Client] = None):
        self.supabase = client or SupabaseConnection.get_client()

    def get_project_manpower(self, project_id: str) -> List[Dict]:
        try:
            response = self.supabase.table('project_manpower')\
                .select('*, workers(name, job_type)')\
                .eq('project_id', project_id)\
                .execute()
            return response.data or []
        except Exception as e:
            logger.exception("Error fetching manpower for %s", project_id)
            st.error(f"Error fetching manpower: {e}")
            return []

    def get_all_manpower(self) -> List[Dict]:
        response = self.supabase.table('project_manpower')\
            .select('project_id, worker_id, monthly_efforts')\
            .execute()
        return response.data or []

    @staticmethod
    def build_entry(project_id: str, entry: Dict) -> Dict:
        """
        Normalise one worker's input into a project_manpower row.
        Raises ValueError for an effort outside 0-1 or a negative price.
        """
        if not entry.get('worker_id'):
            raise ValueError("Worker is required.")
        efforts = {month: parse_effort(value) for month, value in (entry.get('monthly_efforts') or {}).items()}
        unit_price = parse_amount(entry.get('unit_price'))
        effort = total_effort(efforts)
        return {
            'project_id': project_id,
            'worker_id': entry['worker_id'],
            'role': entry.get('role'),
            'grade': entry.get('grade') or '미지정',
            'position': entry.get('position'),
            'unit_price': unit_price,
            'monthly_efforts': efforts,
            'total_effort': effort,
            'total_cost': total_cost(effort, unit_price),
            'updated_at': _now(),
        }

    def save_manpower(self, project_id: str, entries: List[Dict]) -> Tuple[bool, str, List[Tuple[str, str, float]]]:
        """
        Upsert the entries for a project, then refresh worker_mm_records for
        the touched workers and months. Over-allocated months (> 1.0 M/M across
        projects) are returned as warnings; they do not block the save.
        """
        if not entries:
            return False, "No manpower to save.", []
        try:
            rows = [self.build_entry(project_id, e) for e in entries]
        except ValueError as e:
            return False, str(e), []
        try:
            previous = self.supabase.table('project_manpower')\
                .select('worker_id, monthly_efforts')\
                .eq('project_id', project_id)\
                .in_('worker_id', [r['worker_id'] for r in rows])\
                .execute()
            self.supabase.table('project_manpower')\
                .upsert(rows, on_conflict='project_id,worker_id')\
                .execute()

            # Months dropped from an entry are refreshed too
            touched = months_by_worker((previous.data or []) + rows)
            aggregate = self.refresh_mm_records(touched)
            warnings = over_allocated({w: aggregate.get(w, {}) for w in touched})
            logger.info("Saved %d manpower rows for project %s", len(rows), project_id)
            if warnings:
                return True, f"Saved, but {len(warnings)} month(s) exceed 1.0 M/M.", warnings
            return True, "Manpower saved.", []
        except Exception as e:
            logger.exception("Error saving manpower for %s", project_id)
            return False, f"Error saving manpower: {e}", []

    def refresh_mm_records(self, worker_months: Dict[str, Set[str]]) -> Dict[str, Dict[str, float]]:
        """
        Recompute worker_mm_records for the given workers and months from every
        project assignment. Months with no effort left are written as 0.
        Returns the full aggregate. Raises on backend errors; callers catch.
        """
        aggregate = aggregate_monthly_effort(self.get_all_manpower())
        records = []
        for worker_id, months in worker_months.items():
            records.extend(mm_records({worker_id: aggregate.get(worker_id, {})}, sorted(months)))
        if records:
            self.supabase.table('worker_mm_records')\
                .upsert(records, on_conflict='worker_id,year,month')\
                .execute()
        return aggregate

    def remove_manpower(self, project_id: str, worker_id: str) -> Tuple[bool, str]:
        try:
            removed = self.supabase.table('project_manpower')\
                .select('worker_id, monthly_efforts')\
                .eq('project_id', project_id)\
                .eq('worker_id', worker_id)\
                .execute()
            self.supabase.table('project_manpower')\
                .delete()\
                .eq('project_id', project_id)\
                .eq('worker_id', worker_id)\
                .execute()
            self.refresh_mm_records(months_by_worker(removed.data or []))
            return True, "Worker removed from project."
        except Exception as e:
            logger.exception("Error removing worker %s from %s", worker_id, project_id)
            return False, f"Error removing worker: {e}"

    def get_worker_mm_records(self, worker_id: str, year: int) -> List[Dict]:
        try:
            response = self.supabase.table('worker_mm_records')\
                .select('*')\
                .eq('worker_id', worker_id)\
                .eq('year', year)\
                .order('month')\
                .execute()
            return response.data or []
        except Exception as e:
            logger.exception("Error fetching M/M records for %s", worker_id)
            st.error(f"Error fetching M/M records: {e}")
            return []

    @staticmethod
    def to_report(manpower: List[Dict], months: List[str]) -> pd.DataFrame:
        """One row per worker with a column per month plus totals."""
        rows = []
        for m in manpower:
            worker = m.get('workers') or {}
            row = {
                'worker': worker.get('name', m['worker_id']),
                'role': m.get('role') or worker.get('job_type') or '',
                'grade': m.get('grade') or '',
                'unit_price': format_amount(m.get('unit_price')),
            }
            efforts = m.get('monthly_efforts') or {}
            for month in months:
                value = efforts.get(month)
                row[month_label(month)] = value if value is not None else 0.0
            row['total_effort'] = m.get('total_effort', total_effort(efforts))
            row['total_cost'] = format_amount(m.get('total_cost'))
            rows.append(row)
        return pd.DataFrame(rows)


# ============================================
# REVENUE MANAGER
# ============================================
class RevenueManager:
    """Income/expense transactions and the revenue dashboard figures."""

    def __init__(self, client: Optional[Client] = None):
        self.supabase = client or SupabaseConnection.get_client()

    def get_transactions(self, start_date: date = None, end_date: date = None, transaction_type: str = None) -> List[Dict]:
        try:
            query = self.supabase.table('transactions')\
                .select('*')\
                .order('transaction_date', desc=True)
            if transaction_type:
                query = query.eq('transaction_type', transaction_type)
            if start_date:
                query = query.gte('transaction_date', start_date.isoformat())
            if end_date:
                query = query.lte('transaction_date', end_date.isoformat())
            response = query.execute()
            return response.data or []
        except Exception as e:
            logger.exception("Error fetching transactions")
            st.error(f"Error fetching transactions: {e}")
            return []

    def add_transaction(self, data: Dict, created_by: str) -> Tuple[bool, str]:
        if data.get('transaction_type') not in ('income', 'expense'):
            return False, "Type must be income or expense."
        try:
            amount = parse_amount(data.get('amount'))
        except ValueError:
            amount = None
        if not amount:
            return False, "Amount must be > 0."
        if not data.get('transaction_date'):
            return False, "Date is required."
        row = {**data, 'amount': amount, 'created_by': created_by, 'created_at': _now()}
        try:
            self.supabase.table('transactions').insert(row).execute()
            return True, f"{row['transaction_type'].capitalize()} added."
        except Exception as e:
            logger.exception("Error adding transaction")
            return False, f"Error adding transaction: {e}"

    def delete_transaction(self, transaction_id: str, user_role: str) -> Tuple[bool, str]:
        if user_role not in DELETE_ROLES:
            return False, "Permission denied."
        try:
            self.supabase.table('transactions').delete().eq('id', transaction_id).execute()
            return True, "Transaction deleted."
        except Exception as e:
            logger.exception("Error deleting transaction %s", transaction_id)
            return False, f"Error deleting transaction: {e}"

    def get_dashboard(self, year: int, today: Optional[date] = None, recent_limit: int = 5) -> Dict[str, Any]:
        """
        Everything the revenue dashboard shows for the selected year. Settlement
        always compares against today (this month/last month, this year/last year),
        whichever year is selected.
        """
        today = today or date.today()
        transactions = self.get_transactions(start_date=date(year, 1, 1), end_date=date(year, 12, 31))
        settlement_rows = self.get_transactions(start_date=date(today.year - 1, 1, 1), end_date=date(today.year, 12, 31))
        return {
            'monthly': monthly_revenue(transactions, year),
            'split': income_expense_split(transactions),
            'settlement': settlement_summary(settlement_rows, today),
            'recent': transactions[:recent_limit],
        }
