from typing import Dict, Optional
import flet as ft

from studentrecords.services.auth_service import AuthServiceError, ValidationError
from studentrecords.state.sync import SyncController
from studentrecords.ui.views.common import ConfirmBar


def build_gradebook_view(
    page: ft.Page,
    sync: SyncController,
    status_text: ft.Text,
    nav: ft.Control,
) -> ft.View:
    student = ft.Dropdown(width=360, label="Student")
    score_rows = ft.Column(spacing=6)
    subjects_list = ft.Column(spacing=6)
    analysis_text = ft.Text(selectable=True)
    analysis_meta = ft.Text(size=12, color=ft.Colors.GREY_600)

    subject_name = ft.TextField(label="Subject Name", width=260)
    subject_code = ft.TextField(label="Code", width=140)
    subject_credits = ft.TextField(label="Credits", width=100, value="3")
    editing: Dict[str, Optional[str]] = {"subject_id": None}

    def set_status(message: str, is_error: bool = True) -> None:
        status_text.value = message
        status_text.color = ft.Colors.RED_400 if is_error else ft.Colors.GREEN_400

    async def after_change() -> None:
        render()

    confirm_bar = ConfirmBar(page, after_change)

    def load_students() -> None:
        students = [a for a in sync.snapshot.accounts if a.is_student]
        student.options = [ft.dropdown.Option(a.id, f"{a.full_name} ({a.username})") for a in students]
        ids = {a.id for a in students}
        if student.value not in ids:
            student.value = students[0].id if students else None

    def render_scores() -> None:
        score_rows.controls.clear()
        student_id = student.value
        if not student_id:
            score_rows.controls.append(ft.Text("No students available."))
            return

        scores = {g.subject_id: g.score for g in sync.snapshot.grades_for(student_id)}
        for subject in sync.snapshot.subjects:
            field = ft.TextField(
                label=f"{subject.code} - {subject.name}",
                width=320,
                value="" if subject.id not in scores else str(scores[subject.id]),
            )

            async def on_score(_, subject_id=subject.id, field=field):
                if not (field.value or "").strip():
                    return
                try:
                    await sync.enter_score(student.value, subject_id, field.value)
                except AuthServiceError as exc:
                    set_status(str(exc))
                render()

            field.on_submit = on_score
            field.on_blur = on_score
            score_rows.controls.append(field)

    def render_subjects() -> None:
        subjects_list.controls.clear()
        for subject in sync.snapshot.subjects:

            def on_edit(_, s=subject):
                editing["subject_id"] = s.id
                subject_name.value = s.name
                subject_code.value = s.code
                subject_credits.value = str(s.credits)
                page.update()

            def on_delete(_, s=subject):
                try:
                    confirm_bar.ask(sync.request_delete_subject(s.id))
                except AuthServiceError as exc:
                    set_status(str(exc))
                    page.update()

            subjects_list.controls.append(
                ft.Row(
                    controls=[
                        ft.Text(f"{subject.code}", width=100, weight=ft.FontWeight.BOLD),
                        ft.Text(subject.name, width=240),
                        ft.Text(f"{subject.credits} units", width=80),
                        ft.TextButton("Edit", on_click=on_edit),
                        ft.TextButton("Delete", on_click=on_delete),
                    ]
                )
            )

    async def show_latest_analysis() -> None:
        analysis_text.value = ""
        analysis_meta.value = ""
        if student.value:
            latest = await sync.latest_analysis(student.value)
            if latest is not None:
                analysis_text.value = latest.analysis
                analysis_meta.value = f"Generated {latest.generated_at}"
        page.update()

    async def on_student_change(_):
        render()
        await show_latest_analysis()

    async def on_generate(_):
        if not student.value:
            set_status("Select a student first.")
            page.update()
            return
        analysis_text.value = "Generating analysis..."
        page.update()
        try:
            result = await sync.generate_analysis(student.value)
        except ValidationError as exc:
            set_status(str(exc))
            result = None
        if result is not None:
            analysis_text.value = result.analysis
            analysis_meta.value = f"Generated {result.generated_at}"
        else:
            analysis_text.value = ""
        page.update()

    async def on_save_subject(_):
        try:
            ok = await sync.save_subject(
                name=subject_name.value or "",
                code=subject_code.value or "",
                credits=subject_credits.value,
                subject_id=editing["subject_id"],
            )
        except (ValidationError, AuthServiceError) as exc:
            set_status(str(exc))
            page.update()
            return
        if ok:
            reset_subject_form()
        render()

    def reset_subject_form(_=None) -> None:
        editing["subject_id"] = None
        subject_name.value = ""
        subject_code.value = ""
        subject_credits.value = "3"
        page.update()

    def render() -> None:
        load_students()
        render_scores()
        render_subjects()
        page.update()

    student.on_change = on_student_change

    render()
    page.run_task(show_latest_analysis)

    return ft.View(
        route="/grades",
        controls=[
            ft.AppBar(title=ft.Text("Student Management System - Gradebook")),
            ft.Container(
                padding=20,
                content=ft.Column(
                    scroll=ft.ScrollMode.AUTO,
                    controls=[
                        nav,
                        ft.Text("Gradebook", size=22, weight=ft.FontWeight.BOLD),
                        confirm_bar.control,
                        status_text,
                        student,
                        score_rows,
                        ft.Divider(),
                        ft.Text("AI Performance Analysis", size=20, weight=ft.FontWeight.BOLD),
                        ft.Button("Generate Analysis", on_click=on_generate),
                        analysis_text,
                        analysis_meta,
                        ft.Divider(),
                        ft.Text("Subjects", size=20, weight=ft.FontWeight.BOLD),
                        ft.Row(wrap=True, controls=[subject_name, subject_code, subject_credits]),
                        ft.Row(
                            controls=[
                                ft.Button("Save Subject", on_click=on_save_subject),
                                ft.TextButton("Clear", on_click=reset_subject_form),
                            ]
                        ),
                        subjects_list,
                    ],
                ),
            ),
        ],
    )
