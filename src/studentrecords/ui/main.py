import flet as ft

from studentrecords.config.logging_config import setup_logging
from studentrecords.config.settings import settings
from studentrecords.services.analysis_service import GeminiAnalysisService
from studentrecords.services.record_store import RecordStore
from studentrecords.ui.portal import PortalApp


def run() -> None:
    setup_logging()
    store = RecordStore.from_settings()
    generator = GeminiAnalysisService.from_settings()

    async def main(page: ft.Page) -> None:
        portal = PortalApp(page, store, generator=generator)
        await portal.start()

    ft.app(
        target=main,
        view=ft.AppView.WEB_BROWSER if settings.web_mode else ft.AppView.FLET_APP,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
