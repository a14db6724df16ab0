import streamlit as st

from infrastructure.observability import setup_observability
setup_observability()

import auth
from use_cases import auth_flow, bootstrap
from use_cases.rbac_policy import AccessDecision
from utils import session_manager
from views import admin_view, applications_view, login_view, profile_view

# --- PAGE SETTINGS ---
st.set_page_config(page_title="Barangay e-Services", page_icon="🏛", layout="wide")

# Health check for load-balancer heartbeats
if st.query_params.get("health") == "1":
    st.write({"status": "ok"})
    st.stop()

PAGES = {
    "Dashboard": None,
    "My applications": None,
    "New application": None,
    "Profile": None,
    "Admin panel": "admin",
}

# --- STARTUP ORCHESTRATION ---
startup_result = bootstrap.run_startup()
if startup_result.status == "STOP":
    st.stop()

session_manager.init_session_state()
context = session_manager.get_session_context()

# --- AUTH GATE ---
page = st.session_state.current_page
auth_result = auth_flow.ensure_authenticated_session(context, PAGES.get(page))

if auth_result.reason == AccessDecision.PENDING:
    login_view.render_loading_screen()
    st.stop()
if auth_result.reason == AccessDecision.REDIRECT_TO_LOGIN:
    session_manager.stop_watching()
    login_view.render_auth_screen(context)
    st.stop()
if auth_result.reason == AccessDecision.REDIRECT_TO_DASHBOARD:
    st.session_state.current_page = "Dashboard"
    st.rerun()

user = context.current_user

try:
    import sentry_sdk
    if sentry_sdk.get_client().is_active():
        sentry_sdk.set_user({"id": user.id, "role": user.role})
except (ImportError, AttributeError):
    pass

# === MAIN LAYOUT ===
with st.sidebar:
    st.markdown(f"**{user.full_name}**")
    st.caption(user.email)
    visible_pages = [p for p, role in PAGES.items() if role is None or role == user.role]
    choice = st.radio("Navigate", visible_pages, index=visible_pages.index(page) if page in visible_pages else 0)
    if choice != page:
        st.session_state.current_page = choice
        st.rerun()
    if st.button("Sign out", use_container_width=True):
        session_manager.logout()

engine = auth.get_engine()
if page == "Dashboard":
    applications_view.render_dashboard(engine, user)
elif page == "My applications":
    applications_view.render_my_applications(engine, user)
elif page == "New application":
    applications_view.render_new_application(engine, user)
elif page == "Profile":
    profile_view.render_profile(context)
elif page == "Admin panel":
    admin_view.render_admin_panel(engine, user)
