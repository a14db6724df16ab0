import pandas as pd
import plotly.express as px
import streamlit as st

from use_cases import dashboard_flow
from use_cases.domain_models import ApplicationFilters, status_label
from use_cases.errors import MissingReason, PortalError
from utils import session_manager


def _run(action, *args, **kwargs):
    try:
        action(*args, **kwargs)
        st.rerun()
    except MissingReason as e:
        st.warning(str(e))
    except PortalError as e:
        st.error(str(e))


def _render_overview(engine, user, applications):
    stats = dashboard_flow.build_dashboard_stats(applications, total_users=engine.count_users(user))
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Applications", stats.total_applications)
    c2.metric("Pending", stats.pending_applications)
    c3.metric("Under review", stats.under_review_applications)
    c4.metric("Approved", stats.approved_applications)
    c5.metric("Registered users", stats.total_users)

    breakdown = dashboard_flow.status_breakdown(applications)
    fig = px.bar(breakdown, x="label", y="count", labels={"label": "Status", "count": "Applications"})
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=10, b=10))
    st.plotly_chart(fig, use_container_width=True)


def _render_queue(engine, user, applications, names):
    if not applications:
        st.info("Nothing waiting here.")
        return
    for application in applications:
        label = f"{application.tracking_number} · {names.get(application.document_type_id, 'Document')} · {status_label(application.status)}"
        with st.expander(label):
            st.write(application.purpose)
            st.caption(f"Applicant: {application.user_id} · submitted {application.submitted_at:%Y-%m-%d %H:%M}")
            for attachment in application.attachments:
                st.caption(f"📎 {attachment.file_name} · {attachment.file_type}")

            if application.status == "approved":
                if st.button("📦 Mark completed", key=f"complete_{application.id}"):
                    _run(engine.complete_application, application.id, user)
                continue

            reason = st.text_input("Rejection reason", key=f"reason_{application.id}")
            c1, c2, c3 = st.columns(3)
            if application.status == "pending":
                decide = engine.process_application
                if c3.button("🔎 Start review", key=f"review_{application.id}", use_container_width=True):
                    _run(engine.start_review, application.id, user)
            else:
                decide = engine.resolve_review
            if c1.button("✅ Approve", key=f"approve_{application.id}", use_container_width=True):
                _run(decide, application.id, "approve", user)
            if c2.button("⛔ Reject", key=f"reject_{application.id}", use_container_width=True):
                _run(decide, application.id, "reject", user, rejection_reason=reason)


def render_admin_panel(engine, user):
    st.header("⚙️ Admin Panel")
    session_manager.watch_applications(user)
    changed = st.session_state.get("applications_changed")
    if changed is not None and changed.is_set():
        changed.clear()
        st.toast("Applications list refreshed")

    applications = engine.list_applications(user)
    document_types = engine.list_document_types(active_only=False)
    names = {dt.id: dt.name for dt in document_types}

    tab_overview, tab_pending, tab_review, tab_approved, tab_all = st.tabs(
        ["📊 Overview", "🕒 Pending", "🔎 Under review", "✅ Approved", "🗂 All"]
    )
    with tab_overview:
        _render_overview(engine, user, applications)
    with tab_pending:
        _render_queue(engine, user, [a for a in applications if a.status == "pending"], names)
    with tab_review:
        _render_queue(engine, user, [a for a in applications if a.status == "under_review"], names)
    with tab_approved:
        _render_queue(engine, user, [a for a in applications if a.status == "approved"], names)
    with tab_all:
        c1, c2, c3 = st.columns([2, 1, 1])
        search = c1.text_input("Search purpose or tracking number", key="admin_search")
        date_from = c2.date_input("From", value=None, key="admin_from")
        date_to = c3.date_input("To", value=None, key="admin_to")
        filtered = engine.list_applications(
            user,
            ApplicationFilters(search=search or None, date_from=date_from, date_to=date_to),
        )
        df = dashboard_flow.applications_frame(filtered, document_types)
        if df.empty:
            st.info("No applications match.")
        else:
            st.dataframe(df.drop(columns=["id"]), use_container_width=True, hide_index=True)
            csv = df.drop(columns=["id"]).to_csv(index=False).encode("utf-8")
            st.download_button("⬇️ Export CSV", csv, file_name=f"applications_{pd.Timestamp.now():%Y%m%d}.csv")
