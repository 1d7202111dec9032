from typing import Callable
import flet as ft

from studentrecords.services.auth_service import AuthServiceError, ValidationError
from studentrecords.state.sync import SyncController


def build_login_view(
    page: ft.Page,
    sync: SyncController,
    status_text: ft.Text,
    on_authenticated: Callable[[], None],
) -> ft.View:
    username = ft.TextField(label="Username", width=350)
    password = ft.TextField(label="Password", password=True, can_reveal_password=True, width=350)
    full_name = ft.TextField(label="Full Name", width=350, visible=False)
    email = ft.TextField(label="Email Address", width=350, visible=False)
    title = ft.Text("Welcome Back", size=24, weight=ft.FontWeight.BOLD)

    def set_status(message: str, is_error: bool = True) -> None:
        status_text.value = message
        status_text.color = ft.Colors.RED_400 if is_error else ft.Colors.GREEN_400
        page.update()

    def set_mode(signup: bool) -> None:
        full_name.visible = signup
        email.visible = signup
        title.value = "Student Registration" if signup else "Welcome Back"
        sign_in_button.visible = not signup
        sign_up_button.visible = signup
        to_signup.visible = not signup
        to_login.visible = signup
        status_text.value = ""
        page.update()

    async def on_sign_in(_) -> None:
        if not username.value or not password.value:
            set_status("Username and password are required.")
            return
        try:
            await sync.sign_in(username.value.strip(), password.value)
        except AuthServiceError as exc:
            set_status(str(exc))
            return
        status_text.value = ""
        on_authenticated()

    async def on_sign_up(_) -> None:
        try:
            ok = await sync.sign_up(
                username=username.value or "",
                password=password.value or "",
                full_name=full_name.value or "",
                email=email.value or "",
            )
        except ValidationError as exc:
            set_status(str(exc))
            return
        if ok:
            for field in (username, password, full_name, email):
                field.value = ""
            set_mode(False)
            set_status("Account created! Please wait for admin approval before logging in.", is_error=False)

    sign_in_button = ft.Button("Sign In", on_click=on_sign_in)
    sign_up_button = ft.Button("Submit Application", on_click=on_sign_up, visible=False)
    to_signup = ft.TextButton("Don't have an account? Sign Up", on_click=lambda _: set_mode(True))
    to_login = ft.TextButton("Already have an account? Login", on_click=lambda _: set_mode(False), visible=False)

    return ft.View(
        route="/login",
        controls=[
            ft.AppBar(title=ft.Text("Student Management System")),
            ft.Container(
                alignment=ft.Alignment.CENTER,
                padding=20,
                content=ft.Column(
                    horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                    controls=[
                        title,
                        full_name,
                        email,
                        username,
                        password,
                        sign_in_button,
                        sign_up_button,
                        to_signup,
                        to_login,
                        status_text,
                        ft.Text("Demo Credentials: admin / admin", size=12, color=ft.Colors.GREY_500),
                    ],
                ),
            ),
        ],
    )
