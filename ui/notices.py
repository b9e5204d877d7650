"""Show sync notices as Flet snack bars."""
from __future__ import annotations

import flet as ft

from services.notices import Notice, NoticeLevel


_COLORS = {
    NoticeLevel.INFO: None,
    NoticeLevel.SUCCESS: "#16A34A",
    NoticeLevel.ERROR: "#DC2626",
}


class FletNotifier:
    def __init__(self, page: ft.Page):
        self.page = page

    def notify(self, notice: Notice) -> None:
        text = f"{notice.title}: {notice.description}" if notice.description else notice.title
        self.page.snack_bar = ft.SnackBar(ft.Text(text), bgcolor=_COLORS.get(notice.level))
        self.page.snack_bar.open = True
        self.page.update()


__all__ = ["FletNotifier"]
