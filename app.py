# app.py
import base64
import logging
from datetime import date
from typing import Optional, Dict, List

import streamlit as st
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.ticker import FuncFormatter

from backend import UserManager, ProjectManager, WorkerManager, ManpowerManager, RevenueManager, ROLES
from calculations import (
    PROJECT_STATUSES, MAJOR_CATEGORIES, CATEGORIES, CONTRACT_TYPES, PERIODIC_UNITS,
    JOB_TYPES, WORKER_LEVELS, WORKER_GRADES, WORKER_TYPES, EFFORT_GRADES, POSITIONS,
    MANPOWER_ROLES, MAX_PROJECT_NAME,
    to_date, total_pages, clamp_page, paginate, row_number, progress_percent,
    format_amount, contract_total, vat_inclusive, default_unit_price,
    group_by_job_type, month_range, month_label, total_effort, total_cost,
    first_role_tab,
)
from export import generate_pdf, DEFAULT_PDF_SETTINGS

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("business_log")


def get_pdf_download_link(pdf_bytes: bytes, filename: str) -> str:
    b64 = base64.b64encode(pdf_bytes).decode()
    return f'<a href="data:application/octet-stream;base64,{b64}" download="{filename}" style="text-decoration: none; background-color: #4E49E7; color: white; padding: 0.5rem 1rem; border-radius: 8px; display: inline-block;">📥 Download PDF</a>'


def export_pdf_button(df: pd.DataFrame, title: str, filename: str, key: str):
    if st.button("Export PDF", use_container_width=True, key=key):
        pdf = generate_pdf(df, title, st.session_state.pdf_settings)
        st.markdown(get_pdf_download_link(pdf, filename), unsafe_allow_html=True)


def _index(options: List, value, default: int = 0) -> int:
    return options.index(value) if value in options else default


def _amount_text(value: Optional[int]) -> str:
    return f"{value:,}" if value else ''


# ============================================
# PAGE CONFIG & CUSTOM CSS
# ============================================
st.set_page_config(
    page_title="Eluo Business Log",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .main {
        background-color: #ffffff;
        padding: 1rem 2rem;
    }
    section[data-testid="stSidebar"] {
        background-color: #111827 !important;
    }
    section[data-testid="stSidebar"] p,
    section[data-testid="stSidebar"] h2,
    section[data-testid="stSidebar"] .stSelectbox label {
        color: white !important;
    }
    .sidebar-user-card {
        background: #1f2937;
        padding: 1rem;
        border-radius: 8px;
        margin-bottom: 1rem;
        color: white;
    }
    .stButton > button {
        background-color: #4E49E7;
        color: white;
        border-radius: 8px;
        border: none;
    }
    .stButton > button:hover {
        background-color: #3F3ABE;
    }
    div[data-testid="stMetricValue"] {
        font-size: 1.6rem;
        font-weight: 700;
    }
</style>
""", unsafe_allow_html=True)


# ============================================
# SESSION STATE
# ============================================
if 'authenticated' not in st.session_state:
    st.session_state.authenticated = False
    st.session_state.user = None
    st.session_state.page = "Login"
    st.session_state.project_page = 1
    st.session_state.bulk_rows = 1
    st.session_state.pdf_settings = dict(DEFAULT_PDF_SETTINGS)


# ============================================
# LOGIN / LOGOUT
# ============================================
def login():
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h1 style='text-align: center;'>Eluo In Your Business Log</h1>", unsafe_allow_html=True)
        st.markdown("<p style='text-align: center; color: #64748b; margin-bottom: 2rem;'>모든 영업 & 정산 기록을 한 곳에서 관리하세요.</p>", unsafe_allow_html=True)
        with st.form("login_form", clear_on_submit=False):
            email = st.text_input("이메일", placeholder="name@company.com")
            password = st.text_input("비밀번호", type="password")
            submitted = st.form_submit_button("로그인", use_container_width=True)
            if submitted:
                if not email or len(password) < 6:
                    st.error("Enter your email and a password of at least 6 characters.")
                    return
                um = UserManager()
                success, msg, profile = um.sign_in(email, password)
                if success:
                    logger.info("Signed in as %s (%s)", email, profile['role'])
                    st.session_state.authenticated = True
                    st.session_state.user = profile
                    st.rerun()
                else:
                    st.error(msg)


def logout():
    logger.info("Signing out %s", (st.session_state.user or {}).get('email'))
    UserManager().sign_out()
    st.session_state.authenticated = False
    st.session_state.user = None
    st.session_state.page = "Login"
    st.rerun()


# ============================================
# SIDEBAR NAVIGATION
# ============================================
MENU_BY_ROLE = {
    'CPO': {
        "🏠 대시보드": "Dashboard",
        "📁 프로젝트 관리": "Projects",
        "👥 실무자 관리": "Workers",
        "🧮 공수 관리": "Manpower",
        "🔐 사용자 관리": "Users",
        "🖨️ PDF 설정": "PDF Settings",
    },
    'BD': {
        "🏠 대시보드": "Dashboard",
        "📁 프로젝트 관리": "Projects",
        "👥 실무자 관리": "Workers",
        "🧮 공수 관리": "Manpower",
        "🖨️ PDF 설정": "PDF Settings",
    },
    'PM': {
        "📁 프로젝트 관리": "Projects",
        "👥 실무자 관리": "Workers",
        "🧮 공수 관리": "Manpower",
    },
    'PA': {
        "📁 프로젝트 관리": "Projects",
        "🧮 공수 관리": "Manpower",
    },
    'CLIENT': {
        "📁 프로젝트 관리": "Projects",
    },
}


def sidebar_navigation():
    with st.sidebar:
        st.markdown("<h2 style='text-align: center;'>Eluo</h2>", unsafe_allow_html=True)

        user = st.session_state.user
        st.markdown(f"""
        <div class="sidebar-user-card">
            <p><b>{user.get('email', '')}</b></p>
            <p>{user['role']}</p>
        </div>
        """, unsafe_allow_html=True)

        menu_map = MENU_BY_ROLE.get(user['role'], MENU_BY_ROLE['CLIENT'])
        selected_label = st.selectbox("Navigation", list(menu_map.keys()), key="nav_select")
        st.session_state.page = menu_map[selected_label]

        st.divider()
        if st.button("로그아웃", use_container_width=True):
            logout()


# ============================================
# DASHBOARD (Revenue)
# ============================================
def show_dashboard():
    st.header("📊 매출조회")
    user = st.session_state.user
    if not UserManager.has_permission(user['role'], 'canViewAll'):
        st.error("접근 권한이 없습니다.")
        return
    rm = RevenueManager()

    year = st.selectbox("연도", list(range(date.today().year, date.today().year - 5, -1)))
    dashboard = rm.get_dashboard(year)

    st.subheader("매출 통계")
    monthly = dashboard['monthly']
    fig, ax = plt.subplots(figsize=(10, 3.5))
    ax.bar([f"{int(m.split('-')[1])}월" for m in monthly['month']], monthly['amount'], color='#3B82F6')
    ax.yaxis.set_major_formatter(FuncFormatter(lambda v, _: f"{v:,.0f}"))
    ax.grid(axis='y', linestyle='--', alpha=0.5)
    st.pyplot(fig)
    plt.close(fig)

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("수입/지출 현황")
        split = dashboard['split']
        if split['income'] or split['expense']:
            fig, ax = plt.subplots(figsize=(4, 4))
            ax.pie([split['income'], split['expense']], labels=['수입', '지출'],
                   colors=['#4F46E5', '#EF4444'], wedgeprops={'width': 0.35})
            st.pyplot(fig)
            plt.close(fig)
        else:
            st.info("No transactions this year.")
    with col2:
        st.subheader("거래 내역")
        recent = dashboard['recent']
        if recent:
            for t in recent:
                sign = '+' if t['transaction_type'] == 'income' else '-'
                st.write(f"**{t.get('counterparty') or '-'}** · {t['transaction_date']} · {sign} ₩{t['amount']:,.0f}")
        else:
            st.info("No transactions.")

    st.subheader("정산 현황")
    s = dashboard['settlement']
    col1, col2 = st.columns(2)
    with col1:
        st.metric("이번 달 정산", f"₩{s['this_month']:,.0f}",
                  f"{s['month_change']:+.1f}% 전월 대비" if s['month_change'] is not None else None)
    with col2:
        st.metric("총 정산액", f"₩{s['this_year']:,.0f}",
                  f"{s['year_change']:+.1f}% 전년 대비" if s['year_change'] is not None else None)

    if UserManager.can_delete(user):
        with st.expander("➕ 거래 추가", expanded=False):
            with st.form("add_transaction"):
                col1, col2 = st.columns(2)
                with col1:
                    counterparty = st.text_input("거래처")
                    ttype = st.selectbox("구분", ['income', 'expense'], format_func=lambda t: '수입' if t == 'income' else '지출')
                with col2:
                    amount = st.number_input("금액 (원)", min_value=0, step=100000)
                    tdate = st.date_input("일자", value=date.today())
                notes = st.text_area("메모")
                if st.form_submit_button("추가", use_container_width=True):
                    data = {
                        'counterparty': counterparty,
                        'transaction_type': ttype,
                        'amount': amount,
                        'transaction_date': tdate.isoformat(),
                        'notes': notes,
                    }
                    success, msg = rm.add_transaction(data, user['id'])
                    if success:
                        st.success(msg)
                        st.rerun()
                    else:
                        st.error(msg)


# ============================================
# PROJECTS
# ============================================
def _reset_project_page():
    st.session_state.project_page = 1


def project_form(key: str, project: Optional[Dict] = None) -> Optional[Dict]:
    """Fields shared by the new and edit project forms. Returns the raw values once submitted."""
    project = project or {}
    details = project.get('contract_details') or {}
    contract_keys = list(CONTRACT_TYPES)
    contract_type = st.radio("계약 유형", contract_keys, format_func=CONTRACT_TYPES.get,
                             index=_index(contract_keys, project.get('contract_type')),
                             horizontal=True, key=f"{key}_contract_type")
    n_intermediate = 0
    if contract_type == 'milestone':
        n_intermediate = st.number_input("중도금 차수", min_value=0, max_value=12,
                                         value=len(details.get('intermediate_payments') or [None]),
                                         key=f"{key}_n_intermediate")

    with st.form(f"{key}_form"):
        name = st.text_input("프로젝트명*", value=project.get('name', ''), max_chars=MAX_PROJECT_NAME, key=f"{key}_name")
        col1, col2 = st.columns(2)
        with col1:
            client = st.text_input("고객사", value=project.get('client') or '', key=f"{key}_client")
            status = st.selectbox("상태", PROJECT_STATUSES, index=_index(PROJECT_STATUSES, project.get('status')), key=f"{key}_status")
            major = st.selectbox("대분류", [''] + MAJOR_CATEGORIES, index=_index([''] + MAJOR_CATEGORIES, project.get('major_category')), key=f"{key}_major")
            category = st.selectbox("카테고리", [''] + CATEGORIES, index=_index([''] + CATEGORIES, project.get('category')), key=f"{key}_category")
        with col2:
            start = st.date_input("시작일", value=to_date(project.get('start_date')), key=f"{key}_start")
            end = st.date_input("종료일", value=to_date(project.get('end_date')), key=f"{key}_end")
            budget = st.text_input("예산 (원)", value=_amount_text(project.get('budget')), key=f"{key}_budget")
            description = st.text_area("설명", value=project.get('description') or '', key=f"{key}_description")

        st.markdown("**계약 정보**")
        col1, col2 = st.columns(2)
        with col1:
            contract_amount = st.text_input("계약 금액 (원)", value=_amount_text(project.get('contract_amount')), key=f"{key}_amount")
            common_expense = st.text_input("공통 경비 (원)", value=_amount_text(project.get('common_expense')), key=f"{key}_common")
        with col2:
            is_vat = st.checkbox("VAT 포함", value=bool(project.get('is_vat_included')), key=f"{key}_vat")

        form = {
            'name': name,
            'client': client,
            'status': status,
            'major_category': major,
            'category': category,
            'start_date': start,
            'end_date': end,
            'budget': budget,
            'description': description,
            'contract_amount': contract_amount,
            'common_expense': common_expense,
            'is_vat_included': is_vat,
            'contract_type': contract_type,
        }
        if contract_type == 'milestone':
            existing = details.get('intermediate_payments') or []
            form['down_payment'] = st.text_input("착수금 (원)", value=_amount_text(details.get('down_payment')), key=f"{key}_down")
            form['intermediate_payments'] = [
                st.text_input(f"중도금 {i + 1}차 (원)", value=_amount_text(existing[i] if i < len(existing) else None), key=f"{key}_mid_{i}")
                for i in range(int(n_intermediate))
            ]
            form['final_payment'] = st.text_input("잔금 (원)", value=_amount_text(details.get('final_payment')), key=f"{key}_final")
        else:
            units = list(PERIODIC_UNITS)
            col1, col2, col3 = st.columns(3)
            with col1:
                form['periodic_unit'] = st.selectbox("결제 주기", units, format_func=PERIODIC_UNITS.get,
                                                     index=_index(units, details.get('periodic_unit')), key=f"{key}_unit")
            with col2:
                form['periodic_interval'] = st.number_input("간격", min_value=1, value=details.get('periodic_interval') or 1, key=f"{key}_interval")
            with col3:
                form['periodic_amount'] = st.text_input("결제 금액 (원)", value=_amount_text(details.get('periodic_amount')), key=f"{key}_periodic_amount")

        submitted = st.form_submit_button("저장", use_container_width=True)
    return form if submitted else None


def show_projects():
    st.header("📁 프로젝트 관리")
    user = st.session_state.user
    pm = ProjectManager()

    col1, col2 = st.columns([3, 1])
    with col1:
        search = st.text_input("프로젝트명 또는 고객사 검색", key="project_search", on_change=_reset_project_page)
    with col2:
        status = st.selectbox("상태", ['all'] + PROJECT_STATUSES, key="project_status",
                              format_func=lambda s: '전체 상태' if s == 'all' else s,
                              on_change=_reset_project_page)

    if UserManager.can_edit_projects(user):
        with st.expander("➕ 새 프로젝트", expanded=False):
            form = project_form("new_project")
            if form is not None:
                success, msg = pm.create_project(form, user['id'])
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

    projects = pm.get_projects(status, search)
    pages = total_pages(len(projects))
    page = clamp_page(st.session_state.project_page, pages)
    st.session_state.project_page = page

    if not projects:
        st.info("No projects found.")
        return

    current = paginate(projects, page)
    df = ProjectManager.to_report(current)
    df.insert(0, 'no', [row_number(page, i) for i in range(len(current))])
    st.dataframe(
        df,
        use_container_width=True,
        hide_index=True,
        column_config={
            'progress': st.column_config.ProgressColumn("진행률", min_value=0, max_value=100, format="%.0f%%"),
        },
    )

    if pages > 1:
        col1, col2, col3 = st.columns([1, 2, 1])
        with col1:
            if st.button("이전", disabled=page == 1, use_container_width=True):
                st.session_state.project_page = page - 1
                st.rerun()
        with col2:
            st.markdown(f"<p style='text-align: center;'>{page} / {pages}</p>", unsafe_allow_html=True)
        with col3:
            if st.button("다음", disabled=page == pages, use_container_width=True):
                st.session_state.project_page = page + 1
                st.rerun()

    export_pdf_button(ProjectManager.to_report(projects), "프로젝트 목록", "projects.pdf", key="export_projects")

    st.divider()
    st.subheader("상세보기")
    project_options = {f"{p['name']} ({p.get('client') or '-'})": p['id'] for p in projects}
    selected = st.selectbox("프로젝트 선택", list(project_options.keys()))
    project = next(p for p in projects if p['id'] == project_options[selected])

    col1, col2, col3 = st.columns(3)
    with col1:
        total = contract_total(project)
        st.metric("계약 금액", format_amount(total))
    with col2:
        st.metric("VAT 포함 금액", format_amount(vat_inclusive(total, project.get('is_vat_included', False))))
    with col3:
        st.metric("공통 경비", format_amount(project.get('common_expense')))
    progress = progress_percent(project.get('start_date'), project.get('end_date'))
    if progress is not None:
        st.progress(int(progress), text=f"진행률 {progress:.0f}% ({project['start_date']} ~ {project['end_date']})")

    if UserManager.can_edit_projects(user):
        col1, col2 = st.columns([3, 1])
        with col1:
            new_status = st.selectbox("상태 변경", PROJECT_STATUSES,
                                      index=_index(PROJECT_STATUSES, project['status']),
                                      key=f"status_{project['id']}")
        with col2:
            st.write("")
            if st.button("변경", use_container_width=True, key=f"status_btn_{project['id']}",
                         disabled=new_status == project['status']):
                success, msg = pm.update_status(project['id'], new_status)
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

        with st.expander("✏️ 프로젝트 수정", expanded=False):
            form = project_form(f"edit_{project['id']}", project)
            if form is not None:
                success, msg = pm.update_project(project['id'], form)
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

    if UserManager.can_delete(user):
        if st.button("🗑️ 프로젝트 삭제", use_container_width=True):
            success, msg = pm.delete_project(project['id'], user['role'])
            if success:
                st.success(msg)
                st.rerun()
            else:
                st.error(msg)


# ============================================
# WORKERS
# ============================================
def show_workers():
    st.header("👥 실무자 관리")
    user = st.session_state.user
    wm = WorkerManager()

    mode = st.radio("조회", ['all', 'available'], horizontal=True,
                    format_func=lambda m: '전체 인력' if m == 'all' else '유효 인력')
    workers = wm.get_workers() if mode == 'all' else wm.get_available_workers()
    groups = group_by_job_type(workers)

    tabs = st.tabs([f"{job}({len(groups[job])})" for job in JOB_TYPES])
    for tab, job in zip(tabs, JOB_TYPES):
        with tab:
            if groups[job]:
                df = pd.DataFrame(groups[job])
                cols = [c for c in ['name', 'worker_type', 'grade', 'level', 'price', 'is_dispatched'] if c in df.columns]
                st.dataframe(df[cols], use_container_width=True, hide_index=True)
            else:
                st.info("No workers.")

    with st.expander("➕ 실무자 등록", expanded=False):
        with st.form("add_worker"):
            col1, col2 = st.columns(2)
            with col1:
                name = st.text_input("이름*")
                job_type = st.selectbox("직무", JOB_TYPES)
                worker_type = st.selectbox("구분", WORKER_TYPES)
            with col2:
                grade = st.selectbox("직급", [''] + WORKER_GRADES)
                level = st.selectbox("등급", WORKER_LEVELS)
                price = st.text_input("단가 (원)", placeholder="비워두면 직급/등급 기본 단가")
            is_dispatched = st.checkbox("파견중")
            if st.form_submit_button("등록하기", use_container_width=True):
                data = {
                    'name': name,
                    'job_type': job_type,
                    'worker_type': worker_type,
                    'grade': grade or None,
                    'level': level,
                    'price': price,
                    'is_dispatched': is_dispatched,
                }
                success, msg = wm.create_worker(data)
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

    with st.expander("➕ 실무자 한 번에 추가하기", expanded=False):
        col1, col2 = st.columns(2)
        with col1:
            if st.button("+ 실무자 추가", use_container_width=True):
                st.session_state.bulk_rows += 1
        with col2:
            if st.button("- 마지막 행 삭제", use_container_width=True, disabled=st.session_state.bulk_rows == 1):
                st.session_state.bulk_rows -= 1
        with st.form("add_workers_bulk"):
            rows = []
            for i in range(st.session_state.bulk_rows):
                col1, col2 = st.columns(2)
                with col1:
                    row_name = st.text_input(f"실무자 이름 {i + 1}", key=f"bulk_name_{i}")
                with col2:
                    row_job = st.selectbox(f"직무 {i + 1}", [''] + JOB_TYPES, key=f"bulk_job_{i}")
                rows.append({'name': row_name, 'job_type': row_job or None})
            if st.form_submit_button("추가하기", use_container_width=True):
                success, msg, duplicates = wm.create_workers_bulk(rows)
                if success:
                    st.session_state.bulk_rows = 1
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)
                    for index, suggestion in duplicates.items():
                        st.warning(f"{index + 1}. {rows[index]['name']} [중복] → 예: {suggestion}")

    if workers:
        st.subheader("실무자 수정 / 삭제")
        worker_options = {f"{w['name']} ({w.get('job_type') or '-'})": w['id'] for w in workers}
        selected = st.selectbox("실무자 선택", list(worker_options.keys()))
        worker = next(w for w in workers if w['id'] == worker_options[selected])
        with st.form("edit_worker"):
            col1, col2 = st.columns(2)
            with col1:
                name = st.text_input("이름", value=worker['name'])
                job_type = st.selectbox("직무", JOB_TYPES, index=_index(JOB_TYPES, worker.get('job_type')))
                level = st.selectbox("등급", WORKER_LEVELS, index=_index(WORKER_LEVELS, worker.get('level')))
            with col2:
                grade = st.selectbox("직급", [''] + WORKER_GRADES, index=_index([''] + WORKER_GRADES, worker.get('grade')))
                price = st.text_input("단가 (원)", value=_amount_text(worker.get('price')))
                is_dispatched = st.checkbox("파견중", value=bool(worker.get('is_dispatched')))
            if st.form_submit_button("수정", use_container_width=True):
                data = {
                    'name': name,
                    'job_type': job_type,
                    'level': level,
                    'grade': grade or None,
                    'price': price,
                    'is_dispatched': is_dispatched,
                }
                success, msg = wm.update_worker(worker['id'], data)
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)
        if UserManager.can_delete(user):
            if st.button("🗑️ 실무자 삭제", use_container_width=True):
                success, msg = wm.soft_delete_worker(worker['id'], user['role'])
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

    if UserManager.can_delete(user):
        deleted = [w for w in wm.get_workers(include_deleted=True) if w.get('deleted_at')]
        if deleted:
            with st.expander(f"♻️ 삭제된 실무자 ({len(deleted)})", expanded=False):
                options = {f"{w['name']} ({w['deleted_at'][:10]})": w['id'] for w in deleted}
                selected = st.selectbox("복구할 실무자", list(options.keys()), key="restore_worker")
                if st.button("복구", use_container_width=True, key="restore_worker_btn"):
                    success, msg = wm.restore_worker(options[selected])
                    if success:
                        st.success(msg)
                        st.rerun()
                    else:
                        st.error(msg)


# ============================================
# MANPOWER
# ============================================
def manpower_card(worker: Dict, role: str, months: List[str], saved: Optional[Dict]) -> Dict:
    """Inputs for one worker's grade, position, unit price and monthly effort. Returns the entry."""
    saved = saved or {}
    wid = worker['id']
    st.markdown(f"**{worker['name']}** · {worker.get('job_type') or role}")
    col1, col2, col3 = st.columns(3)
    with col1:
        grade = st.selectbox("등급", EFFORT_GRADES, index=_index(EFFORT_GRADES, saved.get('grade')), key=f"mp_{wid}_grade")
    with col2:
        position = st.selectbox("직급", [''] + POSITIONS, index=_index([''] + POSITIONS, saved.get('position')), key=f"mp_{wid}_position")
    with col3:
        default_price = saved.get('unit_price') or default_unit_price(worker.get('grade'), grade) or worker.get('price') or 0
        unit_price = st.number_input("단가 (원)", min_value=0, value=int(default_price), step=100000, key=f"mp_{wid}_price")

    efforts = {}
    saved_efforts = saved.get('monthly_efforts') or {}
    cols = st.columns(min(len(months), 6))
    for i, month in enumerate(months):
        with cols[i % len(cols)]:
            value = st.number_input(month_label(month), min_value=0.0, max_value=1.0, step=0.1,
                                    value=float(saved_efforts.get(month) or 0.0), format="%.1f",
                                    key=f"mp_{wid}_{month}")
            efforts[month] = value or None

    effort = total_effort(efforts)
    col1, col2 = st.columns(2)
    col1.metric("투입소계", f"{effort:.1f}")
    col2.metric("투입비용", f"{total_cost(effort, unit_price):,} 원")
    st.divider()
    return {
        'worker_id': wid,
        'role': role,
        'grade': grade,
        'position': position or None,
        'unit_price': unit_price,
        'monthly_efforts': efforts,
    }


def show_manpower():
    st.header("🧮 공수 관리")
    user = st.session_state.user
    pm = ProjectManager()
    wm = WorkerManager()
    mm = ManpowerManager()

    projects = pm.get_projects()
    if not projects:
        st.info("No projects.")
        return
    project_options = {p['name']: p['id'] for p in projects}
    selected = st.selectbox("프로젝트 선택", list(project_options.keys()))
    project = next(p for p in projects if p['id'] == project_options[selected])

    months = month_range(project.get('start_date'), project.get('end_date'))
    if not months:
        st.warning("Set the project's start and end dates to enter manpower.")
        return

    manpower = mm.get_project_manpower(project['id'])
    saved_by_worker = {m['worker_id']: m for m in manpower}

    if manpower:
        st.subheader("투입 현황")
        report = ManpowerManager.to_report(manpower, months)
        st.dataframe(report, use_container_width=True, hide_index=True)
        export_pdf_button(report, f"공수 현황 - {project['name']}", "manpower.pdf", key="export_manpower")

        with st.expander("📅 실무자별 월간 M/M (전체 프로젝트)", expanded=False):
            assigned = {(m.get('workers') or {}).get('name', m['worker_id']): m['worker_id'] for m in manpower}
            col1, col2 = st.columns(2)
            with col1:
                worker_name = st.selectbox("실무자", list(assigned.keys()), key="mm_worker")
            with col2:
                years = sorted({int(month[:4]) for month in months})
                year = st.selectbox("연도", years, key="mm_year")
            records = mm.get_worker_mm_records(assigned[worker_name], year)
            if records:
                df = pd.DataFrame(records)
                df['month'] = df['month'].apply(lambda m: f"{m}월")
                st.dataframe(df[['month', 'mm_value']], use_container_width=True, hide_index=True)
                over = [r for r in records if r['mm_value'] > 1.0]
                if over:
                    st.warning(f"{len(over)}개월이 1.0 M/M을 초과합니다.")
            else:
                st.info("No M/M records.")

    if not UserManager.can_edit_projects(user):
        return

    workers = wm.get_workers()
    groups = group_by_job_type(workers)
    st.subheader("실무자 선택")
    selected_workers = {}
    cols = st.columns(len(MANPOWER_ROLES))
    for col, role in zip(cols, MANPOWER_ROLES):
        with col:
            options = {w['name']: w for w in groups[role]}
            defaults = [w['name'] for w in groups[role] if w['id'] in saved_by_worker]
            chosen = st.multiselect(role, list(options.keys()), default=defaults, key=f"mp_select_{role}")
            selected_workers[role] = [options[n] for n in chosen]

    if not any(selected_workers.values()):
        st.info("Select workers to enter their effort.")
        return

    first = first_role_tab(selected_workers)
    roles_with_workers = [first] + [r for r in MANPOWER_ROLES if selected_workers[r] and r != first]
    tabs = st.tabs([f"{r} ({len(selected_workers[r])})" for r in roles_with_workers])
    entries = []
    for tab, role in zip(tabs, roles_with_workers):
        with tab:
            for worker in selected_workers[role]:
                entries.append(manpower_card(worker, role, months, saved_by_worker.get(worker['id'])))

    if st.button("저장", use_container_width=True, key="save_manpower"):
        success, msg, warnings = mm.save_manpower(project['id'], entries)
        if success:
            st.success(msg)
            names = {w['id']: w['name'] for w in workers}
            for worker_id, month, value in warnings:
                st.warning(f"{names.get(worker_id, worker_id)}: {month_label(month)} {value:.1f} M/M")
        else:
            st.error(msg)

    removable = [w for w in workers if w['id'] in saved_by_worker]
    if removable:
        with st.expander("➖ 투입 해제", expanded=False):
            options = {w['name']: w['id'] for w in removable}
            name = st.selectbox("실무자", list(options.keys()), key="mp_remove")
            if st.button("해제", use_container_width=True):
                success, msg = mm.remove_manpower(project['id'], options[name])
                if success:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)


# ============================================
# USER MANAGEMENT
# ============================================
def show_user_management():
    st.header("🔐 사용자 관리")
    user = st.session_state.user
    if not UserManager.can_manage_users(user):
        st.error("접근 권한이 없습니다.")
        return

    um = UserManager()
    profiles = um.get_all_profiles()
    if not profiles:
        st.info("No users found.")
        return

    df = pd.DataFrame(profiles)
    st.dataframe(df[['email', 'role', 'created_at']], use_container_width=True, hide_index=True)

    with st.form("change_role"):
        options = {p['email']: p['id'] for p in profiles}
        selected = st.selectbox("사용자", list(options.keys()))
        current = next(p for p in profiles if p['id'] == options[selected])
        new_role = st.selectbox("권한", ROLES, index=_index(ROLES, current['role']))
        if st.form_submit_button("권한 변경", use_container_width=True):
            success, msg = um.change_role(user, options[selected], new_role)
            if success:
                st.success(msg)
                st.rerun()
            else:
                st.error(msg)


# ============================================
# PDF SETTINGS
# ============================================
def show_pdf_settings():
    st.header("🖨️ PDF 설정")

    with st.form("pdf_settings"):
        col1, col2 = st.columns(2)
        with col1:
            primary = st.color_picker("Primary Color", value=st.session_state.pdf_settings['primary_color'])
            secondary = st.color_picker("Secondary Color", value=st.session_state.pdf_settings['secondary_color'])
        with col2:
            font = st.slider("Font Size", 7, 14, st.session_state.pdf_settings['font_size'])
            company = st.text_input("Company Name", value=st.session_state.pdf_settings['company_name'])
        is_landscape = st.checkbox("Landscape", value=st.session_state.pdf_settings['landscape'])

        if st.form_submit_button("Save Settings", use_container_width=True):
            st.session_state.pdf_settings = {
                'primary_color': primary,
                'secondary_color': secondary,
                'font_size': font,
                'company_name': company,
                'landscape': is_landscape,
            }
            st.success("Settings saved!")


# ============================================
# MAIN
# ============================================
PAGES = {
    "Dashboard": show_dashboard,
    "Projects": show_projects,
    "Workers": show_workers,
    "Manpower": show_manpower,
    "Users": show_user_management,
    "PDF Settings": show_pdf_settings,
}


def main():
    if not st.session_state.authenticated:
        login()
    else:
        sidebar_navigation()
        page = PAGES.get(st.session_state.page)
        if page is None:
            st.header("Page under construction")
        else:
            page()


if __name__ == "__main__":
    main()
