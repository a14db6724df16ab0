import streamlit as st

from use_cases.errors import AuthError, RegistrationError
from use_cases.session_models import RegistrationRequest


def render_auth_screen(context):
    st.title("🏛 Barangay e-Services")
    tab_login, tab_register = st.tabs(["Sign in", "Register"])

    with tab_login:
        with st.form("login_form", clear_on_submit=False):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in")
            if submitted:
                try:
                    context.login(email, password)
                    st.rerun()
                except AuthError as e:
                    st.error(str(e))

    with tab_register:
        with st.form("register_form", clear_on_submit=False):
            c1, c2, c3 = st.columns(3)
            first_name = c1.text_input("First name *")
            middle_name = c2.text_input("Middle name")
            last_name = c3.text_input("Last name *")
            email = st.text_input("Email *")
            contact_number = st.text_input("Mobile number *", placeholder="09XXXXXXXXX")
            address = st.text_area("Home address *")
            password = st.text_input("Password *", type="password")
            password_confirm = st.text_input("Confirm password *", type="password")
            submitted = st.form_submit_button("Create account")
            if submitted:
                request = RegistrationRequest(
                    email=email,
                    password=password,
                    confirm_password=password_confirm,
                    first_name=first_name,
                    middle_name=middle_name or None,
                    last_name=last_name,
                    contact_number=contact_number,
                    address=address,
                )
                try:
                    context.register(request)
                    st.rerun()
                except RegistrationError as e:
                    st.error(str(e))
                    for field_name, message in e.errors.items():
                        st.caption(f"• {field_name.replace('_', ' ')}: {message}")


def render_loading_screen():
    st.info("Checking your session…")
