from typing import List
import flet as ft

from studentrecords.config.settings import settings
from studentrecords.core.grades import (
    credit_weighted_average,
    dashboard_summary,
    student_average,
    student_transcript,
    subject_averages,
)
from studentrecords.state.sync import SyncController
from studentrecords.ui.views.common import build_bar, stat_card


def _remark_color(remark: str) -> str:
    if remark == "PASSED":
        return ft.Colors.GREEN_700
    if remark == "FAILED":
        return ft.Colors.RED_700
    return ft.Colors.GREY_500


def _admin_controls(sync: SyncController) -> List[ft.Control]:
    snap = sync.snapshot
    summary = dashboard_summary(snap.accounts, snap.subjects)

    performance = ft.Column(spacing=6)
    for code, average in subject_averages(snap.subjects, snap.grades):
        performance.controls.append(
            ft.Row(
                controls=[
                    ft.Text(code, width=120),
                    build_bar(average),
                    ft.Text(f"{average:.1f}"),
                ]
            )
        )
    if not snap.subjects:
        performance.controls.append(ft.Text("No subjects yet."))

    return [
        ft.Text("Admin Dashboard", size=28, weight=ft.FontWeight.BOLD),
        ft.Text("Overview of school performance and activities."),
        ft.Row(
            wrap=True,
            controls=[
                stat_card("Total Students", str(summary.total_students)),
                stat_card("Pending Approvals", str(summary.pending_approvals)),
                stat_card("Active Students", str(summary.active_students)),
                stat_card("Active Subjects", str(summary.active_subjects)),
            ],
        ),
        ft.Divider(),
        ft.Text("Average Performance by Subject", size=20, weight=ft.FontWeight.BOLD),
        performance,
    ]


def _student_controls(sync: SyncController) -> List[ft.Control]:
    snap = sync.snapshot
    account = sync.state.session.account
    my_grades = snap.grades_for(account.id)

    rows = ft.Column(spacing=4)
    for row in student_transcript(account.id, snap.grades, snap.subjects, passing_score=settings.passing_score):
        rows.controls.append(
            ft.Row(
                controls=[
                    ft.Text(row.code, width=100),
                    ft.Text(row.name, width=240),
                    ft.Text(str(row.credits), width=60),
                    ft.Text("-" if row.score is None else str(row.score), width=60, weight=ft.FontWeight.BOLD),
                    ft.Text(row.remark, color=_remark_color(row.remark)),
                ]
            )
        )

    return [
        ft.Text(f"Welcome, {account.full_name}", size=28, weight=ft.FontWeight.BOLD),
        ft.Row(
            wrap=True,
            controls=[
                stat_card("My GPA (Avg)", f"{student_average(account.id, snap.grades):.2f}"),
                stat_card(
                    "Credit-weighted",
                    f"{credit_weighted_average(account.id, snap.grades, snap.subjects):.2f}",
                ),
                stat_card("Enrolled Subjects", str(len(my_grades))),
            ],
        ),
        ft.Divider(),
        ft.Text("Academic Record", size=20, weight=ft.FontWeight.BOLD),
        ft.Row(
            controls=[
                ft.Text("Code", width=100, weight=ft.FontWeight.BOLD),
                ft.Text("Subject", width=240, weight=ft.FontWeight.BOLD),
                ft.Text("Units", width=60, weight=ft.FontWeight.BOLD),
                ft.Text("Grade", width=60, weight=ft.FontWeight.BOLD),
                ft.Text("Status", weight=ft.FontWeight.BOLD),
            ]
        ),
        rows,
    ]


def build_dashboard_view(page: ft.Page, sync: SyncController, nav: ft.Control) -> ft.View:
    if sync.state.session.is_admin:
        body = _admin_controls(sync)
    else:
        body = _student_controls(sync)

    return ft.View(
        route="/dashboard",
        controls=[
            ft.AppBar(title=ft.Text("Student Management System - Dashboard")),
            ft.Container(
                padding=20,
                content=ft.Column(scroll=ft.ScrollMode.AUTO, controls=[nav, *body]),
            ),
        ],
    )
