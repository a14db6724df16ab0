import threading
from unittest.mock import MagicMock, patch

import streamlit as st

from conftest import make_user
from utils import session_manager


def test_init_session_state():
    st.session_state.clear()
    session_manager.init_session_state()
    assert st.session_state.applications_watch is None
    assert isinstance(st.session_state.applications_changed, threading.Event)
    assert st.session_state.current_page == "Dashboard"


@patch("utils.session_manager.auth.create_session_context")
def test_get_session_context_is_created_once(mock_create):
    st.session_state.clear()
    first = session_manager.get_session_context()
    second = session_manager.get_session_context()

    assert first is second
    mock_create.assert_called_once()


@patch("utils.session_manager.auth.get_engine")
def test_watch_marks_changes_and_stop_unsubscribes(mock_get_engine):
    st.session_state.clear()
    session_manager.init_session_state()
    subscription = MagicMock()
    engine = mock_get_engine.return_value
    engine.watch_applications.return_value = subscription

    session_manager.watch_applications(make_user("u1"))
    session_manager.watch_applications(make_user("u1"))
    engine.watch_applications.assert_called_once()

    callback = engine.watch_applications.call_args.args[1]
    callback([])
    assert st.session_state.applications_changed.is_set()

    session_manager.stop_watching()
    subscription.unsubscribe.assert_called_once()
    assert st.session_state.applications_watch is None
    assert not st.session_state.applications_changed.is_set()


@patch("streamlit.rerun")
def test_logout(mock_rerun):
    st.session_state.clear()
    session_manager.init_session_state()
    context = MagicMock()
    st.session_state.session_context = context
    st.session_state.current_page = "Profile"

    session_manager.logout()

    context.logout.assert_called_once()
    mock_rerun.assert_called_once()
    assert st.session_state.current_page == "Dashboard"
