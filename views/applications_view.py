import streamlit as st

from use_cases import dashboard_flow
from use_cases.domain_models import APPLICATION_STATUS_CONFIG, ApplicationFilters, Attachment, status_label
from use_cases.errors import PortalError, ValidationError
from utils import session_manager


def _refresh_notice():
    changed = st.session_state.get("applications_changed")
    if changed is not None and changed.is_set():
        changed.clear()
        st.toast("Your applications were updated")


def render_dashboard(engine, user):
    session_manager.watch_applications(user)
    _refresh_notice()

    st.subheader(f"Welcome, {user.first_name}!")
    st.caption("Here's an overview of your document applications and account status.")
    stats = dashboard_flow.load_dashboard(engine, user)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total applications", stats.total_applications)
    c2.metric("Pending", stats.pending_applications)
    c3.metric("Approved", stats.approved_applications)
    c4.metric("Completed", stats.completed_applications)

    st.markdown("#### Recent applications")
    if not stats.recent_applications:
        st.info("No applications yet. Start by requesting a document.")
        return
    df = dashboard_flow.applications_frame(stats.recent_applications, engine.list_document_types(active_only=False))
    st.dataframe(
        df[["tracking_number", "document_type", "status_label", "submitted_at"]],
        use_container_width=True,
        hide_index=True,
    )


def render_my_applications(engine, user):
    session_manager.watch_applications(user)
    _refresh_notice()
    st.subheader("My applications")

    document_types = engine.list_document_types(active_only=False)
    c1, c2 = st.columns([2, 1])
    search = c1.text_input("Search by purpose or tracking number")
    status_options = ["all"] + list(APPLICATION_STATUS_CONFIG.keys())
    status = c2.selectbox("Status", status_options, format_func=lambda s: "All" if s == "all" else status_label(s))

    filters = ApplicationFilters(status=None if status == "all" else status, search=search or None)
    applications = engine.list_applications(user, filters)
    if not applications:
        st.info("No applications match your filters." if (search or status != "all") else "You have no applications yet.")
        return

    names = {dt.id: dt.name for dt in document_types}
    page_no = st.number_input("Page", min_value=1, value=1, step=1)
    page = dashboard_flow.paginate(applications, page=page_no)
    st.caption(f"{page.total} application(s), page {page.page} of {max(page.total_pages, 1)}")
    for application in page.data:
        with st.expander(f"{application.tracking_number} · {names.get(application.document_type_id, 'Document')} · {status_label(application.status)}"):
            st.write(application.purpose)
            st.caption(f"Submitted {application.submitted_at:%B %d, %Y %H:%M}")
            if application.rejection_reason:
                st.error(f"Rejected: {application.rejection_reason}")
            for attachment in application.attachments:
                st.caption(f"📎 {attachment.file_name} ({attachment.file_size:,} bytes)")
            if application.status == "pending" and application.user_id == user.id:
                if st.button("Cancel application", key=f"cancel_{application.id}"):
                    try:
                        engine.cancel_application(application.id, user)
                        st.rerun()
                    except PortalError as e:
                        st.error(str(e))


def render_new_application(engine, user):
    st.subheader("Request a document")
    document_types = engine.list_document_types()
    if not document_types:
        st.warning("No documents are available for request right now.")
        return

    by_id = {dt.id: dt for dt in document_types}
    selected_id = st.selectbox(
        "Document type",
        list(by_id.keys()),
        format_func=lambda i: f"{by_id[i].name} (₱{by_id[i].fee:,.2f})",
    )
    selected = by_id[selected_id]
    st.caption(f"{selected.description} · Processing time: {selected.processing_time}")
    st.markdown("**Requirements**")
    for requirement in selected.requirements:
        st.markdown(f"- {requirement}")

    with st.form("new_application_form", clear_on_submit=True):
        purpose = st.text_area("Purpose", placeholder="e.g. Employment requirement")
        uploads = st.file_uploader(
            "Supporting documents (images, PDF or Word, up to 5 files, 5MB each)",
            accept_multiple_files=True,
        )
        submitted = st.form_submit_button("Submit application")
        if submitted:
            attachments = [Attachment(file_name=f.name, file_type=f.type or "", file_size=f.size) for f in (uploads or [])]
            try:
                application = engine.submit_application(user.id, selected_id, purpose, attachments)
                st.success(f"Application submitted. Tracking number: {application.tracking_number}")
            except ValidationError as e:
                st.error(str(e))
            except PortalError as e:
                st.error(f"Could not submit application: {e}")
