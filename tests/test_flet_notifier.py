from services.notices import sync_complete, sync_failed
from ui.notices import FletNotifier


class FakePage:
    def __init__(self):
        self.snack_bar = None
        self.updates = 0

    def update(self):
        self.updates += 1


def test_notice_shown_as_snack_bar():
    page = FakePage()

    FletNotifier(page).notify(sync_complete(2))

    assert page.snack_bar.open is True
    assert page.snack_bar.content.value == "Sync Complete: 2 offline changes synchronized"
    assert page.updates == 1


def test_error_notices_are_red():
    page = FakePage()
    FletNotifier(page).notify(sync_failed(1))
    assert page.snack_bar.bgcolor == "#DC2626"
