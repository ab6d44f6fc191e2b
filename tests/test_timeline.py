from __future__ import annotations

from PySide6.QtCore import QEvent, QPointF, Qt
from PySide6.QtGui import QMouseEvent, QPainter

from cortexviz.model.selection import SelectionEntry
from cortexviz.view.painting import image_buffer
from cortexviz.view.timeline import TimelineWidget, draw_timeline, slot_width, timeline_click_dt


class TestTimelineGeometry:
    def test_slot_width(self) -> None:
        assert slot_width(800, 50) == 16

    def test_click_dt(self) -> None:
        """The rightmost slot is the most recent step."""
        assert timeline_click_dt(799, 800, 50) == 0
        assert timeline_click_dt(784, 800, 50) == 0
        assert timeline_click_dt(783, 800, 50) == 1
        assert timeline_click_dt(0, 800, 50) == 49


class TestDrawTimeline:
    def test_selected_slot_is_opaque(self, qapp, steps, options) -> None:
        frame = image_buffer(800, 24)
        painter = QPainter(frame)
        try:
            draw_timeline(painter, 800, 24, steps, (SelectionEntry(dt=0),), options)
        finally:
            painter.end()
        # dot of the selected, most recent step: radius 12 around (791, 12)
        assert frame.pixelColor(791, 3).alpha() == 255
        # a slot past the retained steps is drawn faintly
        assert 0 < frame.pixelColor(800 - 1 - 8 - 10 * 16, 12).alpha() < 64


class TestTimelineWidget:
    def test_click_goes_through_loop(self, wired) -> None:
        widget = TimelineWidget(wired.store, wired.loop)
        widget.resize(800, 24)
        widget.redraw()
        pos = QPointF(783 - 16, 12)
        widget.mousePressEvent(QMouseEvent(
            QEvent.Type.MouseButtonPress, pos, pos,
            Qt.MouseButton.LeftButton, Qt.MouseButton.LeftButton, Qt.KeyboardModifier.NoModifier,
        ))
        wired.loop.process_pending()
        assert wired.store.selection == (SelectionEntry(dt=2, model_id="m3"),)
