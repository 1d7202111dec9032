from dataclasses import replace
from typing import Callable, Dict, Optional
import flet as ft

from studentrecords.core.grades import search_accounts
from studentrecords.core.models import Account, AccountStatus
from studentrecords.services.auth_service import AuthServiceError, ValidationError
from studentrecords.state.sync import SyncController
from studentrecords.ui.views.common import ConfirmBar


STATUS_COLORS: Dict[AccountStatus, str] = {
    AccountStatus.APPROVED: ft.Colors.GREEN_700,
    AccountStatus.PENDING: ft.Colors.AMBER_800,
    AccountStatus.REJECTED: ft.Colors.RED_700,
}


def build_students_view(
    page: ft.Page,
    sync: SyncController,
    status_text: ft.Text,
    nav: ft.Control,
    approvals_mode: bool = False,
) -> ft.View:
    search = ft.TextField(label="Search by name or email", width=360)
    list_column = ft.Column(spacing=8)

    edit_state: Dict[str, Optional[Account]] = {"account": None}
    edit_name = ft.TextField(label="Full Name", width=300)
    edit_email = ft.TextField(label="Email", width=300)
    edit_panel = ft.Container(visible=False)

    new_username = ft.TextField(label="Username", width=220)
    new_password = ft.TextField(label="Password", password=True, width=220)
    new_name = ft.TextField(label="Full Name", width=220)
    new_email = ft.TextField(label="Email", width=220)

    def set_status(message: str, is_error: bool = True) -> None:
        status_text.value = message
        status_text.color = ft.Colors.RED_400 if is_error else ft.Colors.GREEN_400

    async def after_change() -> None:
        render()

    confirm_bar = ConfirmBar(page, after_change)

    def ask(make_pending: Callable[[], object]) -> None:
        try:
            confirm_bar.ask(make_pending())
        except (ValidationError, AuthServiceError) as exc:
            set_status(str(exc))
            page.update()

    def start_edit(account: Account) -> None:
        edit_state["account"] = account
        edit_name.value = account.full_name
        edit_email.value = account.email
        edit_panel.visible = True
        page.update()

    async def on_save_edit(_):
        account = edit_state["account"]
        if account is None:
            return
        updated = replace(account, full_name=(edit_name.value or "").strip(), email=(edit_email.value or "").strip())
        edit_state["account"] = None
        edit_panel.visible = False
        await sync.edit_account(updated)
        render()

    def on_cancel_edit(_):
        edit_state["account"] = None
        edit_panel.visible = False
        page.update()

    async def on_add_student(_):
        try:
            ok = await sync.create_account(
                username=new_username.value or "",
                password=new_password.value or "",
                full_name=new_name.value or "",
                email=new_email.value or "",
            )
        except (ValidationError, AuthServiceError) as exc:
            set_status(str(exc))
            page.update()
            return
        if ok:
            for field in (new_username, new_password, new_name, new_email):
                field.value = ""
        render()

    def account_card(account: Account) -> ft.Card:
        actions = []
        if account.status == AccountStatus.PENDING:
            actions.append(
                ft.Button(
                    "Approve",
                    on_click=lambda _, a=account: ask(
                        lambda: sync.request_status_change(a.id, AccountStatus.APPROVED)
                    ),
                )
            )
            actions.append(
                ft.OutlinedButton(
                    "Reject",
                    on_click=lambda _, a=account: ask(
                        lambda: sync.request_status_change(a.id, AccountStatus.REJECTED)
                    ),
                )
            )
        if not approvals_mode:
            actions.append(ft.TextButton("Edit", on_click=lambda _, a=account: start_edit(a)))
        actions.append(
            ft.TextButton(
                "Delete",
                on_click=lambda _, a=account: ask(lambda: sync.request_delete_account(a.id)),
            )
        )

        return ft.Card(
            content=ft.Container(
                padding=12,
                content=ft.Column(
                    controls=[
                        ft.Text(account.full_name, weight=ft.FontWeight.BOLD),
                        ft.Text(f"@{account.username} · {account.email or '-'}"),
                        ft.Text(account.status.value, color=STATUS_COLORS[account.status]),
                        ft.Row(controls=actions),
                    ]
                ),
            )
        )

    def render() -> None:
        list_column.controls.clear()
        students = search_accounts(sync.snapshot.accounts, search.value or "", pending=approvals_mode)
        if not students:
            empty = "No pending approvals." if approvals_mode else "No students found."
            list_column.controls.append(ft.Text(empty))
        for account in students:
            list_column.controls.append(account_card(account))
        page.update()

    search.on_change = lambda _: render()

    edit_panel.content = ft.Column(
        controls=[
            ft.Text("Edit Student", size=18, weight=ft.FontWeight.BOLD),
            edit_name,
            edit_email,
            ft.Row(
                controls=[
                    ft.Button("Save", on_click=on_save_edit),
                    ft.TextButton("Cancel", on_click=on_cancel_edit),
                ]
            ),
        ]
    )

    add_panel = ft.Column(
        visible=not approvals_mode,
        controls=[
            ft.Text("Add Student", size=18, weight=ft.FontWeight.BOLD),
            ft.Row(wrap=True, controls=[new_username, new_password, new_name, new_email]),
            ft.Button("Create Approved Account", on_click=on_add_student),
        ],
    )

    render()

    title = "Pending Approvals" if approvals_mode else "Student Directory"
    return ft.View(
        route="/approvals" if approvals_mode else "/students",
        controls=[
            ft.AppBar(title=ft.Text(f"Student Management System - {title}")),
            ft.Container(
                padding=20,
                content=ft.Column(
                    scroll=ft.ScrollMode.AUTO,
                    controls=[
                        nav,
                        ft.Text(title, size=22, weight=ft.FontWeight.BOLD),
                        search,
                        confirm_bar.control,
                        status_text,
                        edit_panel,
                        list_column,
                        ft.Divider(),
                        add_panel,
                    ],
                ),
            ),
        ],
    )
