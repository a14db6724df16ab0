import threading

import streamlit as st

import auth
from use_cases.session_context import SessionContext

"""
SESSION STATE CONTRACT

Keys kept in st.session_state for one browser session:

session_context: SessionContext
    owner of the signed-in user; the only writer of it
    default: created on first access
    owner: utils/session_manager

applications_watch: Subscription | None
    change-feed subscription refreshing the application list
    default: None
    owner: views

applications_changed: threading.Event
    set from the writer thread when the visible list changed
    default: unset event
    owner: views

current_page: str
    selected navigation entry
    default: "Dashboard"
    owner: app
"""


def init_session_state():
    if "applications_watch" not in st.session_state:
        st.session_state.applications_watch = None
    if "applications_changed" not in st.session_state:
        st.session_state.applications_changed = threading.Event()
    if "current_page" not in st.session_state:
        st.session_state.current_page = "Dashboard"


def get_session_context() -> SessionContext:
    context = st.session_state.get("session_context")
    if context is None:
        context = auth.create_session_context()
        st.session_state.session_context = context
    return context


def stop_watching():
    watch = st.session_state.get("applications_watch")
    if watch is not None:
        watch.unsubscribe()
    st.session_state.applications_watch = None
    changed = st.session_state.get("applications_changed")
    if changed is not None:
        changed.clear()


def watch_applications(user):
    """Mark the list dirty whenever an application visible to ``user`` changes."""
    if st.session_state.get("applications_watch") is not None:
        return

    init_session_state()
    # Runs on the writer's thread, so capture the event rather than st.session_state
    changed = st.session_state.applications_changed

    def mark_changed(_applications):
        changed.set()

    st.session_state.applications_watch = auth.get_engine().watch_applications(user, mark_changed)


def logout():
    stop_watching()
    get_session_context().logout()
    st.session_state.current_page = "Dashboard"
    st.rerun()
