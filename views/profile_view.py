import streamlit as st

from use_cases.errors import PortalError, ValidationError
from use_cases.session_models import ProfileUpdate


def render_profile(context):
    user = context.current_user
    if user is None:
        return
    st.subheader("My profile")
    st.caption(f"{user.email} · role: {user.role} · {'active' if user.is_active else 'inactive'}")

    with st.form("profile_form"):
        c1, c2, c3 = st.columns(3)
        first_name = c1.text_input("First name", value=user.first_name)
        middle_name = c2.text_input("Middle name", value=user.middle_name or "")
        last_name = c3.text_input("Last name", value=user.last_name)
        contact_number = st.text_input("Mobile number", value=user.contact_number)
        address = st.text_area("Home address", value=user.address)
        submitted = st.form_submit_button("Save changes")
        if submitted:
            try:
                context.update_user(ProfileUpdate(
                    first_name=first_name,
                    middle_name=middle_name,
                    last_name=last_name,
                    contact_number=contact_number,
                    address=address,
                ))
                st.success("Profile updated")
            except ValidationError as e:
                for field_name, message in e.errors.items():
                    st.error(f"{field_name.replace('_', ' ')}: {message}")
            except PortalError as e:
                st.error(f"Failed to update profile: {e}")
