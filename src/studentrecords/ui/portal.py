from typing import Optional
import flet as ft

from studentrecords.services.record_store import RecordStore
from studentrecords.state.app_state import AppState
from studentrecords.state.sync import AnalysisGenerator, Notice, SyncController
from studentrecords.ui.views.common import apply_notice
from studentrecords.ui.views.dashboard_view import build_dashboard_view
from studentrecords.ui.views.gradebook_view import build_gradebook_view
from studentrecords.ui.views.login_view import build_login_view
from studentrecords.ui.views.students_view import build_students_view


class PortalApp:
    def __init__(
        self,
        page: ft.Page,
        store: RecordStore,
        generator: Optional[AnalysisGenerator] = None,
    ) -> None:
        self.page = page
        self.page.title = "Student Management System"
        self.page.scroll = ft.ScrollMode.AUTO
        self.state = AppState()
        self.status = ft.Text(color=ft.Colors.RED_400)
        self.sync = SyncController(store, self.state, notify=self.show_notice, generator=generator)

    async def start(self) -> None:
        await self.sync.refresh()
        self.show_login()

    def show_notice(self, notice: Notice) -> None:
        apply_notice(self.status, notice)
        self.page.update()

    def _show(self, view: ft.View) -> None:
        self.page.views.clear()
        self.page.views.append(view)
        self.page.update()

    def _nav(self) -> ft.Row:
        items = [ft.TextButton("Dashboard", on_click=lambda _: self.show_dashboard())]
        if self.state.session.is_admin:
            items += [
                ft.TextButton("Students", on_click=lambda _: self.show_students()),
                ft.TextButton("Approvals", on_click=lambda _: self.show_students(approvals=True)),
                ft.TextButton("Grades", on_click=lambda _: self.show_gradebook()),
            ]
        else:
            items.append(ft.TextButton("My Grades", on_click=lambda _: self.show_dashboard()))
        items.append(ft.OutlinedButton("Logout", on_click=lambda _: self.logout()))
        return ft.Row(controls=items, wrap=True)

    def show_login(self) -> None:
        self._show(build_login_view(self.page, self.sync, self.status, self.show_dashboard))

    def show_dashboard(self) -> None:
        self.status.value = ""
        self._show(build_dashboard_view(self.page, self.sync, self._nav()))

    def show_students(self, approvals: bool = False) -> None:
        self.status.value = ""
        self._show(build_students_view(self.page, self.sync, self.status, self._nav(), approvals_mode=approvals))

    def show_gradebook(self) -> None:
        self.status.value = ""
        self._show(build_gradebook_view(self.page, self.sync, self.status, self._nav()))

    def logout(self) -> None:
        self.sync.sign_out()
        self.status.value = ""
        self.show_login()
