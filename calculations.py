# calculations.py
import math
import re
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Set, Tuple, Union

import pandas as pd
from dateutil import parser as dtparser
from dateutil.relativedelta import relativedelta

DateLike = Union[date, datetime, str, None]

# ============================================
# DOMAIN CONSTANTS
# ============================================
PROJECT_STATUSES = ['준비중', '진행중', '완료', '보류']
MAJOR_CATEGORIES = ['운영', '구축', '개발', '기타']
CATEGORIES = ['금융', '커머스', 'AI', '기타']
CONTRACT_TYPES = {'milestone': '회차 정산형', 'periodic': '정기 결제형'}
PERIODIC_UNITS = {'month': '월', 'week': '주'}

JOB_TYPES = ['기획', '디자인', '퍼블리싱', '개발', '기타']
WORKER_LEVELS = ['초급', '중급', '고급', '특급']
WORKER_GRADES = ['BD', 'BM', 'PM', 'PL', 'PA']
WORKER_TYPES = ['임직원', '협력사임직원', '프리랜서(기업)', '프리랜서(개인)']

EFFORT_GRADES = ['미지정', '특급', '고급', '중급', '초급']
POSITIONS = ['부장', '차장', '과장', '대리', '주임', '사원']
MANPOWER_ROLES = ['기획', '디자인', '퍼블리싱', '개발']

ITEMS_PER_PAGE = 20
VAT_RATE = 0.1
MAX_PROJECT_NAME = 100

# Monthly rate (KRW) per technical level, plus a premium per organizational grade.
LEVEL_BASE_PRICE = {
    '특급': 9_500_000,
    '고급': 8_000_000,
    '중급': 6_500_000,
    '초급': 5_000_000,
}
GRADE_PREMIUM = {
    'BD': 2_000_000,
    'BM': 1_500_000,
    'PM': 1_000_000,
    'PL': 500_000,
    'PA': 0,
}


def to_date(value: DateLike) -> Optional[date]:
    """Coerce a date, datetime or ISO string (as returned by Supabase) to a date."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return dtparser.parse(str(value)).date()


# ============================================
# AMOUNTS
# ============================================
def parse_amount(value: Any) -> Optional[int]:
    """
    Parse a comma-formatted amount typed into a text field.
    "1,234,000" -> 1234000; blank -> None. Non-digit characters are dropped.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Amount must be a number.")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError("Amount must not be negative.")
        return int(value)
    digits = re.sub(r'[^\d]', '', str(value))
    return int(digits) if digits else None


def format_amount(value: Optional[float]) -> str:
    if not value:
        return '-'
    return f"{int(value):,}원"


def vat_inclusive(amount: Optional[int], is_vat_included: bool) -> Optional[int]:
    if amount is None:
        return None
    if is_vat_included:
        return amount
    return int(round(amount * (1 + VAT_RATE)))


def contract_total(project: Dict) -> Optional[int]:
    """
    Total value of a contract. Milestone contracts add up their instalments;
    periodic contracts (and projects without details) use contract_amount.
    """
    details = project.get('contract_details') or {}
    if project.get('contract_type') == 'milestone' and details:
        parts = [details.get('down_payment'), details.get('final_payment')]
        parts.extend(details.get('intermediate_payments') or [])
        parts = [p for p in parts if p is not None]
        if parts:
            return sum(parts)
    return project.get('contract_amount')


# ============================================
# PAGINATION
# ============================================
def total_pages(item_count: int, per_page: int = ITEMS_PER_PAGE) -> int:
    return math.ceil(item_count / per_page) if item_count > 0 else 0


def clamp_page(page: int, pages: int) -> int:
    return max(1, min(page, max(pages, 1)))


def paginate(items: List[Any], page: int, per_page: int = ITEMS_PER_PAGE) -> List[Any]:
    page = clamp_page(page, total_pages(len(items), per_page))
    start = (page - 1) * per_page
    return items[start:start + per_page]


def row_number(page: int, index: int, per_page: int = ITEMS_PER_PAGE) -> int:
    return (page - 1) * per_page + index + 1


# ============================================
# PROJECT PROGRESS & FORMS
# ============================================
def progress_percent(start: DateLike, end: DateLike, today: Optional[date] = None) -> Optional[float]:
    """
    Share of the [start, end] range that has elapsed, clamped to 0-100.
    Returns None when either date is missing.
    """
    start_d, end_d = to_date(start), to_date(end)
    if start_d is None or end_d is None:
        return None
    today = today or date.today()
    if today < start_d:
        return 0.0
    total = (end_d - start_d).days
    if total <= 0:
        return 100.0
    elapsed = (today - start_d).days
    return round(min(100.0, elapsed / total * 100), 1)


def build_project_payload(form: Dict) -> Dict:
    """Turn raw form values into the row stored in the projects table."""
    contract_type = form.get('contract_type') or 'milestone'
    if contract_type == 'milestone':
        details = {
            'down_payment': parse_amount(form.get('down_payment')),
            'intermediate_payments': [parse_amount(p) for p in form.get('intermediate_payments') or []],
            'final_payment': parse_amount(form.get('final_payment')),
        }
    else:
        interval = form.get('periodic_interval')
        details = {
            'periodic_unit': form.get('periodic_unit') or 'month',
            'periodic_interval': int(interval) if interval not in (None, '') else None,
            'periodic_amount': parse_amount(form.get('periodic_amount')),
        }

    start_d, end_d = to_date(form.get('start_date')), to_date(form.get('end_date'))
    return {
        'name': (form.get('name') or '').strip(),
        'client': (form.get('client') or '').strip(),
        'status': form.get('status') or '준비중',
        'major_category': form.get('major_category') or None,
        'category': form.get('category') or None,
        'start_date': start_d.isoformat() if start_d else None,
        'end_date': end_d.isoformat() if end_d else None,
        'budget': parse_amount(form.get('budget')),
        'description': form.get('description') or None,
        'contract_amount': parse_amount(form.get('contract_amount')),
        'is_vat_included': bool(form.get('is_vat_included')),
        'common_expense': parse_amount(form.get('common_expense')),
        'contract_type': contract_type,
        'contract_details': details,
    }


def validate_project(payload: Dict) -> Tuple[bool, str]:
    name = payload.get('name') or ''
    if not name.strip():
        return False, "Project name is required."
    if len(name) > MAX_PROJECT_NAME:
        return False, f"Project name must be at most {MAX_PROJECT_NAME} characters."
    if payload.get('status') not in PROJECT_STATUSES:
        return False, f"Unknown status: {payload.get('status')}"
    if payload.get('contract_type') not in CONTRACT_TYPES:
        return False, f"Unknown contract type: {payload.get('contract_type')}"

    start_d, end_d = to_date(payload.get('start_date')), to_date(payload.get('end_date'))
    if start_d and end_d and end_d < start_d:
        return False, "End date must not be before start date."

    for field in ('budget', 'contract_amount', 'common_expense'):
        value = payload.get(field)
        if value is not None and value < 0:
            return False, f"{field} must not be negative."

    details = payload.get('contract_details') or {}
    if payload['contract_type'] == 'periodic':
        if details.get('periodic_unit') not in PERIODIC_UNITS:
            return False, "Payment cycle must be month or week."
        interval = details.get('periodic_interval')
        if interval is None or interval < 1:
            return False, "Payment interval must be at least 1."
    return True, ""


# ============================================
# WORKERS
# ============================================
def default_unit_price(grade: Optional[str], level: Optional[str]) -> Optional[int]:
    """Default monthly unit price for a grade/level pair; None when the level is unset."""
    base = LEVEL_BASE_PRICE.get(level or '')
    if base is None:
        return None
    return base + GRADE_PREMIUM.get(grade or '', 0)


def group_by_job_type(workers: List[Dict]) -> Dict[str, List[Dict]]:
    """Split workers into job-type tabs in display order. Unknown job types go to 기타."""
    groups: Dict[str, List[Dict]] = {job: [] for job in JOB_TYPES}
    for worker in workers:
        job = worker.get('job_type')
        groups[job if job in groups else '기타'].append(worker)
    return groups


def find_duplicate_names(names: List[str], existing_names: List[str]) -> Dict[int, bool]:
    """
    Flag every row of a bulk-entry batch whose name already exists or repeats
    within the batch. Blank names are never flagged.
    """
    existing = {n.strip() for n in existing_names if n}
    cleaned = [(n or '').strip() for n in names]
    flags = {}
    for i, name in enumerate(cleaned):
        if not name:
            flags[i] = False
            continue
        in_batch = any(other == name for j, other in enumerate(cleaned) if j != i)
        flags[i] = name in existing or in_batch
    return flags


def suggest_distinct_name(name: str, taken: List[str]) -> str:
    """홍길동 -> 홍길동2 (or the next free number)."""
    taken_set = set(taken)
    n = 2
    while f"{name}{n}" in taken_set:
        n += 1
    return f"{name}{n}"


# ============================================
# MANPOWER
# ============================================
def month_range(start: DateLike, end: DateLike) -> List[str]:
    """Every calendar month touched by [start, end] as 'YYYY-MM' keys."""
    start_d, end_d = to_date(start), to_date(end)
    if start_d is None or end_d is None or end_d < start_d:
        return []
    months = []
    current = start_d.replace(day=1)
    while current <= end_d:
        months.append(current.strftime('%Y-%m'))
        current += relativedelta(months=1)
    return months


def month_label(month_key: str) -> str:
    year, month = month_key.split('-')
    return f"{year}년 {int(month)}월"


def parse_effort(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    effort = float(value)
    if not math.isfinite(effort) or effort < 0 or effort > 1:
        raise ValueError("Effort must be between 0 and 1 M/M.")
    return round(effort, 1)


def total_effort(monthly_efforts: Dict[str, Optional[float]]) -> float:
    return round(sum(v for v in (monthly_efforts or {}).values() if v is not None), 1)


def total_cost(effort: float, unit_price: Optional[int]) -> int:
    if not unit_price:
        return 0
    return int(round(effort * unit_price))


def first_role_tab(selected_workers: Dict[str, List[Dict]]) -> str:
    for role, workers in (selected_workers or {}).items():
        if workers:
            return role
    return MANPOWER_ROLES[0]


def aggregate_monthly_effort(rows: List[Dict]) -> Dict[str, Dict[str, float]]:
    """Sum each worker's effort per month across every project assignment."""
    totals: Dict[str, Dict[str, float]] = {}
    for row in rows:
        worker_totals = totals.setdefault(row['worker_id'], {})
        for month, value in (row.get('monthly_efforts') or {}).items():
            if value is None:
                continue
            worker_totals[month] = round(worker_totals.get(month, 0.0) + value, 1)
    return totals


def months_by_worker(rows: List[Dict]) -> Dict[str, Set[str]]:
    """Month keys each worker has an entry for, across the given manpower rows."""
    months: Dict[str, Set[str]] = {}
    for row in rows:
        months.setdefault(row['worker_id'], set()).update((row.get('monthly_efforts') or {}).keys())
    return months


def over_allocated(aggregate: Dict[str, Dict[str, float]], limit: float = 1.0) -> List[Tuple[str, str, float]]:
    found = []
    for worker_id, months in aggregate.items():
        for month, value in months.items():
            if value > limit + 1e-9:
                found.append((worker_id, month, value))
    return sorted(found)


def mm_records(aggregate: Dict[str, Dict[str, float]], months: Optional[List[str]] = None) -> List[Dict]:
    """Rows for worker_mm_records. Months without effort are written as 0."""
    records = []
    for worker_id, worker_months in aggregate.items():
        keys = months if months is not None else sorted(worker_months)
        for key in keys:
            year, month = key.split('-')
            records.append({
                'worker_id': worker_id,
                'year': int(year),
                'month': int(month),
                'mm_value': worker_months.get(key, 0.0),
            })
    return records


# ============================================
# REVENUE
# ============================================
def monthly_revenue(transactions: List[Dict], year: int) -> pd.DataFrame:
    """Income per month for a year, zero-filled to 12 rows."""
    months = [f"{year}-{m:02d}" for m in range(1, 13)]
    df = pd.DataFrame(transactions)
    if df.empty:
        return pd.DataFrame({'month': months, 'amount': [0] * 12})
    df = df[df['transaction_type'] == 'income'].copy()
    df['month'] = df['transaction_date'].apply(lambda d: to_date(d).strftime('%Y-%m'))
    sums = df.groupby('month')['amount'].sum()
    return pd.DataFrame({'month': months, 'amount': [sums.get(m, 0) for m in months]})


def income_expense_split(transactions: List[Dict]) -> Dict[str, float]:
    split = {'income': 0, 'expense': 0}
    for t in transactions:
        if t['transaction_type'] in split:
            split[t['transaction_type']] += t['amount']
    return split


def pct_change(current: float, previous: float) -> Optional[float]:
    if not previous:
        return None
    return round((current - previous) / previous * 100, 1)


def settlement_summary(transactions: List[Dict], today: Optional[date] = None) -> Dict:
    """This month's income vs last month, and this year's vs last year."""
    today = today or date.today()
    this_month = today.replace(day=1)
    last_month = this_month - relativedelta(months=1)
    summary = {'this_month': 0, 'last_month': 0, 'this_year': 0, 'last_year': 0}
    for t in transactions:
        if t['transaction_type'] != 'income':
            continue
        d = to_date(t['transaction_date'])
        if (d.year, d.month) == (this_month.year, this_month.month):
            summary['this_month'] += t['amount']
        elif (d.year, d.month) == (last_month.year, last_month.month):
            summary['last_month'] += t['amount']
        if d.year == today.year:
            summary['this_year'] += t['amount']
        elif d.year == today.year - 1:
            summary['last_year'] += t['amount']
    summary['month_change'] = pct_change(summary['this_month'], summary['last_month'])
    summary['year_change'] = pct_change(summary['this_year'], summary['last_year'])
    return summary
