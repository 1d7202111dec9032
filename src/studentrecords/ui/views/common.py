from typing import Awaitable, Callable, Optional
import flet as ft

from studentrecords.state.sync import Notice, PendingMutation


def build_bar(value: float, maximum: float = 100) -> ft.Container:
    width = max(10, int(220 * (value / maximum))) if maximum else 10
    return ft.Container(width=width, height=12, bgcolor=ft.Colors.RED_900, border_radius=6)


def stat_card(label: str, value: str) -> ft.Card:
    return ft.Card(
        content=ft.Container(
            padding=16,
            width=200,
            content=ft.Column(
                controls=[
                    ft.Text(label, color=ft.Colors.GREY_600),
                    ft.Text(value, size=24, weight=ft.FontWeight.BOLD),
                ]
            ),
        )
    )


def apply_notice(status: ft.Text, notice: Notice) -> None:
    status.value = notice.message
    status.color = ft.Colors.RED_400 if notice.is_error else ft.Colors.GREEN_400


class ConfirmBar:
    """Inline confirmation strip for destructive actions."""

    def __init__(self, page: ft.Page, on_done: Callable[[], Awaitable[None]]) -> None:
        self.page = page
        self.on_done = on_done
        self.pending: Optional[PendingMutation] = None
        self.prompt = ft.Text(weight=ft.FontWeight.BOLD)
        self.control = ft.Container(
            visible=False,
            padding=10,
            bgcolor=ft.Colors.AMBER_100,
            border_radius=6,
            content=ft.Row(
                controls=[
                    self.prompt,
                    ft.Button("Confirm", on_click=self._on_confirm),
                    ft.TextButton("Cancel", on_click=self._on_cancel),
                ]
            ),
        )

    def ask(self, pending: PendingMutation) -> None:
        if self.pending is not None:
            self.pending.cancel()
        self.pending = pending
        self.prompt.value = pending.prompt
        self.control.visible = True
        self.page.update()

    async def _on_confirm(self, _) -> None:
        pending, self.pending = self.pending, None
        self.control.visible = False
        if pending is not None:
            await pending.confirm()
        await self.on_done()

    def _on_cancel(self, _) -> None:
        if self.pending is not None:
            self.pending.cancel()
        self.pending = None
        self.control.visible = False
        self.page.update()

