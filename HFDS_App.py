# HFDS_App.py
# ============================================================
# HFDS (Hands-Free Driving System) Simulator (Single-window HMI)
# PySide6 / Qt - Home + Simulation pages, road view, HUD, security log
# Control logic lives in hfds_core; this file only renders and forwards input
# ============================================================

import sys
import time
import logging
from typing import List, Optional

from PySide6.QtCore import Qt, QTimer, QObject, Signal, QElapsedTimer, QRectF, QPointF
from PySide6.QtGui import QColor, QPainter, QPen, QFont, QLinearGradient, QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QStackedWidget, QHBoxLayout, QVBoxLayout, QGridLayout,
    QLabel, QPushButton, QFrame, QTableWidget, QTableWidgetItem, QHeaderView, QDoubleSpinBox,
    QCheckBox, QTextEdit, QGraphicsDropShadowEffect
)

from hfds_core import (
    HfdsController, HfdsConfig, HfdsState, DriverState, WarningLevel, VehicleParameters,
    ScenarioDef, ScenarioRunner, SCENARIOS, KEY_BINDINGS, STATUS_TEXT, STATUS_COLOR,
    WARNING_TEXT, MRM_BANNER, HfdsConfigError,
)

_logger = logging.getLogger(__name__)


# ============================================================
# --- Constants & Helpers
# ============================================================

SIM_FIXED_DT = 0.02           # 50 Hz fixed-step control
UI_FRAME_MS = 16              # ~60 FPS render loop
AUDIT_TABLE_MS = 100          # 10 Hz security log refresh
ROAD_SPEED_PX_S = 300.0       # lane dash scroll speed while engaged
LANE_WIDTH_PX = 100.0
DASH_PX = 40.0
GAP_PX = 20.0
MAX_AUDIT_ROWS = 1200

def clamp(x, lo, hi):
    return lo if x < lo else hi if x > hi else x

def rgb(t) -> QColor:
    return QColor(t[0], t[1], t[2])


# ============================================================
# --- Simulation Core (controller scheduling)
# ============================================================

class SimCore(QObject):
    updated = Signal()

    def __init__(self, params: Optional[VehicleParameters] = None, config: Optional[HfdsConfig] = None):
        super().__init__()
        self.controller = HfdsController(params=params, config=config)
        self.runner = ScenarioRunner(self.controller)
        self.road_offset = 0.0

        self._accumulator = 0.0
        self._timer = QElapsedTimer()
        self._timer.start()
        self._last_real = self._timer.elapsed() / 1000.0

        self.ui_cache = self.controller.get_snapshot().to_dict()

    def reset(self, params: Optional[VehicleParameters] = None):
        self.runner.stop()
        self.controller.reset(params if params is not None else self.controller.params)
        self.road_offset = 0.0
        self._update_ui_cache()
        self.updated.emit()

    def press_key(self, key: str) -> bool:
        handled = self.controller.press_key(key)
        if handled:
            self._update_ui_cache()
            self.updated.emit()
        return handled

    def start_scenario(self, scn: ScenarioDef):
        self.road_offset = 0.0
        self.runner.start(scn)
        self._update_ui_cache()
        self.updated.emit()

    def step_real_time(self):
        now = self._timer.elapsed() / 1000.0
        dt_real = clamp(now - self._last_real, 0.0, 0.05)  # avoid spiral
        self._last_real = now
        self._accumulator += dt_real

        while self._accumulator >= SIM_FIXED_DT:
            self._fixed_step(SIM_FIXED_DT)
            self._accumulator -= SIM_FIXED_DT

        self._update_ui_cache()
        self.updated.emit()

    def _fixed_step(self, dt: float):
        if self.runner.is_active():
            self.runner.step(dt)
        else:
            self.controller.tick(dt)

        c = self.controller
        if c.hfds_state == HfdsState.ENGAGED and not c.mrm_active:
            self.road_offset += ROAD_SPEED_PX_S * dt

    def _update_ui_cache(self):
        self.ui_cache = self.controller.get_snapshot().to_dict()
        self.ui_cache["road_offset"] = self.road_offset
        self.ui_cache["scenario_running"] = self.runner.is_active()


# ============================================================
# --- Log bridge (logging -> console widget)
# ============================================================

class LogBridge(QObject):
    message = Signal(str, str)   # text, kind (allow / deny / sim)

class ConsoleLogHandler(logging.Handler):
    def __init__(self, bridge: LogBridge):
        super().__init__(level=logging.INFO)
        self.bridge = bridge

    def emit(self, record: logging.LogRecord):
        try:
            msg = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        # the gate logs ALLOW at INFO and DENY at WARNING; other core messages are sim events
        if record.levelno >= logging.WARNING:
            kind = "deny"
        elif record.funcName == "authorize":
            kind = "allow"
        else:
            kind = "sim"
        self.bridge.message.emit(msg, kind)


# ============================================================
# --- UI Components (Cards, Road View, Console, Security Log)
# ============================================================

DARK_QSS = """
* { font-family: "Segoe UI"; }
QMainWindow { background: #0b0f14; }
QWidget { color: #d7e0ea; }
QFrame#Card {
    background: qlineargradient(x1:0,y1:0,x2:0,y2:1, stop:0 #111826, stop:1 #0c121d);
    border: 1px solid rgba(255,255,255,0.06);
    border-radius: 16px;
}
QLabel#Title { color: #eaf2ff; font-size: 14px; font-weight: 700; }
QLabel#Subtle { color: rgba(215,224,234,0.65); }
QPushButton {
    background: rgba(255,255,255,0.06);
    border: 1px solid rgba(255,255,255,0.08);
    border-radius: 12px;
    padding: 8px 10px;
}
QPushButton:hover { background: rgba(255,255,255,0.09); }
QPushButton:checked { background: rgba(53,209,255,0.18); }
QPushButton#Primary {
    background: qlineargradient(x1:0,y1:0,x2:1,y2:1, stop:0 #1b5cff, stop:1 #35d1ff);
    border: 1px solid rgba(255,255,255,0.10);
    color: #071018;
    font-weight: 800;
}
QDoubleSpinBox {
    background: rgba(255,255,255,0.05);
    border: 1px solid rgba(255,255,255,0.08);
    border-radius: 10px;
    padding: 4px 8px;
}
QTableWidget, QTextEdit {
    background: rgba(255,255,255,0.03);
    border: 1px solid rgba(255,255,255,0.08);
    border-radius: 14px;
    gridline-color: rgba(255,255,255,0.06);
}
QHeaderView::section {
    background: rgba(255,255,255,0.05);
    padding: 6px;
    border: none;
    color: rgba(215,224,234,0.70);
}
"""

LOG_COLORS = {"allow": "#22c55e", "deny": "#ef4444", "sim": "#93c5fd"}

def make_shadow(widget: QWidget, radius=24, dx=0, dy=10, alpha=90):
    sh = QGraphicsDropShadowEffect()
    sh.setBlurRadius(radius)
    sh.setOffset(dx, dy)
    sh.setColor(QColor(0, 0, 0, alpha))
    widget.setGraphicsEffect(sh)

class Card(QFrame):
    def __init__(self, title: str = "", parent=None):
        super().__init__(parent)
        self.setObjectName("Card")
        lay = QVBoxLayout(self)
        lay.setContentsMargins(14, 14, 14, 14)
        lay.setSpacing(10)
        if title:
            t = QLabel(title)
            t.setObjectName("Title")
            lay.addWidget(t)
        self.body = QWidget(self)
        lay.addWidget(self.body, 1)
        make_shadow(self)

class RoadView(QWidget):
    """
    Top-down three-lane road. Solid outer lines, dashed inner lines that scroll
    while HFDS drives; all markings vanish during a lane fault. The HUD (status,
    driver, warnings, MRM banner) is painted on top.
    """
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(520, 600)
        self.setAttribute(Qt.WA_OpaquePaintEvent, True)
        self.cache = {}

    def update_signals(self, cache: dict):
        self.cache = dict(cache)
        self.update()

    def _draw_lanes(self, p: QPainter, w: int, h: int):
        if not self.cache.get("lane_markings_visible", True):
            return
        cx = w / 2
        left, right = cx - LANE_WIDTH_PX * 1.5, cx + LANE_WIDTH_PX * 1.5
        inner = (cx - LANE_WIDTH_PX * 0.5, cx + LANE_WIDTH_PX * 0.5)

        p.setPen(QPen(QColor(255, 255, 255), 5))
        p.drawLine(QPointF(left, 0), QPointF(left, h))
        p.drawLine(QPointF(right, 0), QPointF(right, h))

        seg = DASH_PX + GAP_PX
        y_off = self.cache.get("road_offset", 0.0) % seg
        n = int(h // seg) + 2
        for i in range(-1, n):
            y1 = i * seg + y_off
            for x in inner:
                p.drawLine(QPointF(x, y1), QPointF(x, y1 + DASH_PX))

    def _draw_car(self, p: QPainter, w: int, h: int):
        p.setPen(Qt.NoPen)
        p.setBrush(QColor(0, 150, 255))
        p.drawRoundedRect(QRectF(w / 2 - 40, h - 80 - 65, 80, 130), 12, 12)

    def _draw_hud(self, p: QPainter, w: int, h: int):
        c = self.cache
        st = HfdsState(int(c.get("hfds_state", 0)))
        drv = DriverState(int(c.get("driver_state", 0)))
        lvl = WarningLevel(int(c.get("warning_level", 0)))

        p.setPen(rgb(STATUS_COLOR[st]))
        p.setFont(QFont("Segoe UI", 15, QFont.Weight.Bold))
        p.drawText(QRectF(12, 10, w - 24, 28), Qt.AlignLeft | Qt.AlignTop, STATUS_TEXT[st])

        p.setFont(QFont("Segoe UI", 11))
        p.setPen(QColor(255, 255, 255) if drv == DriverState.ATTENTIVE else QColor(255, 200, 0))
        p.drawText(QRectF(12, 40, w - 24, 20), Qt.AlignLeft | Qt.AlignTop, f"Driver Status: {drv.name.title()}")
        if drv == DriverState.DISTRACTED:
            p.drawText(QRectF(12, 60, w - 24, 20), Qt.AlignLeft | Qt.AlignTop,
                       f"Timer: {c.get('distraction_timer', 0.0):.1f}s")

        if lvl > WarningLevel.NONE:
            p.setPen(QColor(255, 0, 0) if lvl == WarningLevel.HAPTIC else QColor(255, 255, 0))
            p.setFont(QFont("Segoe UI", 18, QFont.Weight.Bold))
            p.drawText(QRectF(0, h / 2 - 20, w, 40), Qt.AlignCenter, WARNING_TEXT[lvl])

        if c.get("mrm_active", False):
            p.setPen(QColor(255, 0, 0))
            p.setFont(QFont("Segoe UI", 22, QFont.Weight.Bold))
            p.drawText(QRectF(0, h / 2 - 110, w, 80), Qt.AlignCenter, MRM_BANNER)

    def paintEvent(self, e):
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing, True)
        w, h = self.width(), self.height()

        bg = QLinearGradient(0, 0, 0, h)
        bg.setColorAt(0.0, QColor(44, 44, 44))
        bg.setColorAt(1.0, QColor(34, 34, 34))
        p.fillRect(0, 0, w, h, bg)

        self._draw_lanes(p, w, h)
        self._draw_car(p, w, h)
        self._draw_hud(p, w, h)

class ConsoleLog(QTextEdit):
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setReadOnly(True)

    def append_entry(self, message: str, kind: str = "sim"):
        ts = time.strftime("%H:%M:%S")
        col = LOG_COLORS.get(kind, LOG_COLORS["sim"])
        self.append(f"<span style='color:{col}'>[{ts}] {message}</span>")
        self.verticalScrollBar().setValue(self.verticalScrollBar().maximum())

    def clear_log(self):
        self.clear()
        self.append_entry("Log Cleared.", "sim")

class AuditTable(QTableWidget):
    """Security log: one row per gate decision, read incrementally from the audit log."""
    def __init__(self, core: SimCore, parent=None):
        super().__init__(0, 5, parent)
        self.core = core
        self._audit = None
        self._last_seq = 0
        self.setHorizontalHeaderLabels(["Seq", "Time", "Command", "Origin", "Decision"])
        hdr = self.horizontalHeader()
        for col in (0, 1, 4):
            hdr.setSectionResizeMode(col, QHeaderView.ResizeToContents)
        hdr.setSectionResizeMode(2, QHeaderView.Stretch)
        hdr.setSectionResizeMode(3, QHeaderView.Stretch)
        self.setAlternatingRowColors(True)

        self.timer = QTimer(self)
        self.timer.timeout.connect(self._tick)
        self.timer.start(AUDIT_TABLE_MS)

    def _tick(self):
        audit = self.core.controller.audit
        if audit is not self._audit:
            # controller reset: fresh log
            self._audit = audit
            self._last_seq = 0
            self.setRowCount(0)
        self._last_seq, records = audit.consume_since(self._last_seq)
        for rec in records:
            r = self.rowCount()
            self.insertRow(r)
            self.setItem(r, 0, QTableWidgetItem(str(rec.seq)))
            self.setItem(r, 1, QTableWidgetItem(time.strftime("%H:%M:%S", time.localtime(rec.timestamp))))
            self.setItem(r, 2, QTableWidgetItem(rec.command))
            self.setItem(r, 3, QTableWidgetItem(rec.origin))
            item = QTableWidgetItem(rec.decision.value)
            item.setForeground(QColor(LOG_COLORS["allow" if rec.allowed else "deny"]))
            self.setItem(r, 4, item)

        if self.rowCount() > MAX_AUDIT_ROWS:
            for _ in range(self.rowCount() - MAX_AUDIT_ROWS):
                self.removeRow(0)
        if records:
            self.scrollToBottom()


# ============================================================
# --- Simulation View
# ============================================================

class SimulationView(QWidget):
    def __init__(self, core: SimCore, scenarios: List[ScenarioDef], parent=None):
        super().__init__(parent)
        self.core = core
        self.scenarios = scenarios
        self._selected: Optional[ScenarioDef] = None

        root = QHBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        # Left: scenarios + instructions
        c_scn = Card("Scenarios")
        scn_l = QVBoxLayout(c_scn.body)
        scn_l.setContentsMargins(0, 0, 0, 0)
        scn_l.setSpacing(8)
        self.scn_buttons = {}
        for scn in scenarios:
            b = QPushButton(scn.title)
            b.setCheckable(True)
            b.clicked.connect(lambda _=False, s=scn: self.show_scenario(s))
            scn_l.addWidget(b)
            self.scn_buttons[scn.key] = b
        self.txt_steps = QTextEdit()
        self.txt_steps.setReadOnly(True)
        scn_l.addWidget(self.txt_steps, 1)
        run_row = QHBoxLayout()
        self.btn_autoplay = QPushButton("Autoplay")
        self.btn_autoplay.setObjectName("Primary")
        self.btn_stop = QPushButton("Stop")
        run_row.addWidget(self.btn_autoplay)
        run_row.addWidget(self.btn_stop)
        scn_l.addLayout(run_row)

        # Left: vehicle parameters
        c_par = Card("Vehicle Parameters")
        par_l = QGridLayout(c_par.body)
        par_l.setContentsMargins(0, 0, 0, 0)
        par_l.setHorizontalSpacing(8)
        par_l.setVerticalSpacing(8)
        p0 = core.controller.params
        self.spn_speed = QDoubleSpinBox()
        self.spn_speed.setRange(0.0, 250.0)
        self.spn_speed.setSingleStep(5.0)
        self.spn_speed.setValue(p0.speed_kmh)
        self.chk_road = QCheckBox("Road supported")
        self.chk_road.setChecked(p0.road_supported)
        self.spn_map = QDoubleSpinBox()
        self.spn_map.setRange(0.0, 240.0)
        self.spn_map.setSingleStep(1.0)
        self.spn_map.setValue(p0.map_freshness_h)
        self.btn_apply = QPushButton("Apply & Reset")
        par_l.addWidget(QLabel("Speed (km/h)"), 0, 0)
        par_l.addWidget(self.spn_speed, 0, 1)
        par_l.addWidget(self.chk_road, 1, 0, 1, 2)
        par_l.addWidget(QLabel("Map age (h)"), 2, 0)
        par_l.addWidget(self.spn_map, 2, 1)
        par_l.addWidget(self.btn_apply, 3, 0, 1, 2)

        left_col = QVBoxLayout()
        left_col.setSpacing(10)
        left_col.addWidget(c_scn, 1)
        left_col.addWidget(c_par, 0)

        # Center: road
        c_road = Card("Simulation")
        road_l = QVBoxLayout(c_road.body)
        road_l.setContentsMargins(0, 0, 0, 0)
        self.road = RoadView()
        road_l.addWidget(self.road, 1)
        legend = QLabel("  ".join(f"[{k}] {cmd.value}" for k, (cmd, _) in KEY_BINDINGS.items()))
        legend.setObjectName("Subtle")
        legend.setWordWrap(True)
        road_l.addWidget(legend)

        # Right: console + security log
        c_log = Card("Console")
        log_l = QVBoxLayout(c_log.body)
        log_l.setContentsMargins(0, 0, 0, 0)
        self.console = ConsoleLog()
        self.btn_clear = QPushButton("Clear Log")
        log_l.addWidget(self.console, 1)
        log_l.addWidget(self.btn_clear)

        c_audit = Card("Security Log")
        aud_l = QVBoxLayout(c_audit.body)
        aud_l.setContentsMargins(0, 0, 0, 0)
        self.audit_table = AuditTable(core)
        aud_l.addWidget(self.audit_table, 1)

        right_col = QVBoxLayout()
        right_col.setSpacing(10)
        right_col.addWidget(c_log, 1)
        right_col.addWidget(c_audit, 1)

        root.addLayout(left_col, 0)
        root.addWidget(c_road, 1)
        root.addLayout(right_col, 0)

        self.btn_autoplay.clicked.connect(self._autoplay)
        self.btn_stop.clicked.connect(self.core.runner.stop)
        self.btn_apply.clicked.connect(self._apply_params)
        self.btn_clear.clicked.connect(self.console.clear_log)
        self.core.updated.connect(self.on_core_updated)

        if scenarios:
            self.show_scenario(scenarios[0], reset=False)

    def show_scenario(self, scn: ScenarioDef, reset: bool = True):
        if reset:
            self.core.reset()
        self._selected = scn
        for key, b in self.scn_buttons.items():
            b.setChecked(key == scn.key)
        self.txt_steps.setPlainText(scn.title + "\n\n" + "\n".join(f"• {s}" for s in scn.steps))

    def _autoplay(self):
        if self._selected:
            self.core.start_scenario(self._selected)

    def _apply_params(self):
        try:
            params = VehicleParameters(
                speed_kmh=float(self.spn_speed.value()),
                road_supported=self.chk_road.isChecked(),
                map_freshness_h=float(self.spn_map.value()),
            )
        except HfdsConfigError as ex:
            self.console.append_entry(f"Invalid parameters: {ex}", "deny")
            return
        self.core.reset(params)

    def on_core_updated(self):
        self.road.update_signals(self.core.ui_cache)
        self.btn_autoplay.setEnabled(not self.core.ui_cache.get("scenario_running", False))


# ============================================================
# --- Home View
# ============================================================

class HomeView(QWidget):
    def __init__(self, on_start, parent=None):
        super().__init__(parent)
        root = QVBoxLayout(self)
        root.setContentsMargins(40, 40, 40, 40)
        root.setSpacing(14)

        card = Card("Hands-Free Driving System (HFDS) Prototype")
        l = QVBoxLayout(card.body)
        l.setContentsMargins(0, 0, 0, 0)
        intro = QLabel(
            "Simulates HFDS engagement, driver-inattention escalation, lane-marking faults and "
            "minimum risk maneuvers. Every privileged command passes a security manager that "
            "logs an ALLOW or DENY decision."
        )
        intro.setWordWrap(True)
        l.addWidget(intro)
        keys = QLabel("\n".join(f"{k}  →  {cmd.value} ({org.value})" for k, (cmd, org) in KEY_BINDINGS.items()))
        keys.setObjectName("Subtle")
        l.addWidget(keys)
        btn = QPushButton("Open Simulation")
        btn.setObjectName("Primary")
        btn.clicked.connect(on_start)
        l.addWidget(btn, 0, Qt.AlignLeft)

        root.addWidget(card, 0)
        root.addStretch(1)


# ============================================================
# --- Main Window with Navigation
# ============================================================

class NavButton(QPushButton):
    def __init__(self, text: str, parent=None):
        super().__init__(text, parent)
        self.setCheckable(True)
        self.setMinimumHeight(44)

class MainWindow(QMainWindow):
    def __init__(self, config: Optional[HfdsConfig] = None):
        super().__init__()
        self.setWindowTitle("HFDS Simulator (PySide6)")
        self.setMinimumSize(1280, 760)

        self.core = SimCore(config=config)

        central = QWidget()
        self.setCentralWidget(central)
        root = QHBoxLayout(central)
        root.setContentsMargins(14, 14, 14, 14)
        root.setSpacing(12)

        nav = QFrame()
        nav.setObjectName("Card")
        nav_l = QVBoxLayout(nav)
        nav_l.setContentsMargins(14, 14, 14, 14)
        nav_l.setSpacing(10)
        title = QLabel("HFDS HMI")
        title.setFont(QFont("Segoe UI", 18, QFont.Weight.Bold))
        sub = QLabel("Hands-free driving demo")
        sub.setObjectName("Subtle")
        nav_l.addWidget(title)
        nav_l.addWidget(sub)
        nav_l.addSpacing(12)
        self.btn_home = NavButton("Home")
        self.btn_sim = NavButton("Simulation")
        nav_l.addWidget(self.btn_home)
        nav_l.addWidget(self.btn_sim)
        nav_l.addStretch(1)
        make_shadow(nav)

        self.stack = QStackedWidget()
        self.view_home = HomeView(on_start=lambda: self._switch(1), parent=self)
        self.view_sim = SimulationView(self.core, list(SCENARIOS), parent=self)
        self.stack.addWidget(self.view_home)
        self.stack.addWidget(self.view_sim)

        root.addWidget(nav, 0)
        root.addWidget(self.stack, 1)

        self.btn_home.clicked.connect(lambda: self._switch(0))
        self.btn_sim.clicked.connect(lambda: self._switch(1))
        self._switch(0)

        # Console mirrors the core's log stream
        self.log_bridge = LogBridge()
        self.log_bridge.message.connect(self.view_sim.console.append_entry)
        self.log_handler = ConsoleLogHandler(self.log_bridge)
        logging.getLogger("hfds_core").addHandler(self.log_handler)

        # Keys only drive the core while the simulation page is showing
        self._shortcuts = []
        for key in KEY_BINDINGS:
            sc = QShortcut(QKeySequence(key), self)
            sc.activated.connect(lambda k=key: self._on_key(k))
            self._shortcuts.append(sc)

        self.timer = QTimer(self)
        self.timer.timeout.connect(self.core.step_real_time)
        self.timer.start(UI_FRAME_MS)

        self.setStyleSheet(DARK_QSS)

        self.view_sim.console.append_entry("HFDS Prototype Initialized.", "sim")
        self.view_sim.console.append_entry("Security Manager is Active.", "sim")

    def _switch(self, idx: int):
        idx = 0 if idx not in (0, 1) else idx
        self.btn_home.setChecked(idx == 0)
        self.btn_sim.setChecked(idx == 1)
        self.stack.setCurrentIndex(idx)

    def _on_key(self, key: str):
        if self.stack.currentIndex() != 1:
            return
        self.core.press_key(key)

    def closeEvent(self, e):
        logging.getLogger("hfds_core").removeHandler(self.log_handler)
        super().closeEvent(e)


# ============================================================
# --- Entry Point
# ============================================================

def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        config = HfdsConfig.from_env()
    except HfdsConfigError as ex:
        _logger.error("Invalid HFDS configuration: %s", ex)
        sys.exit(2)
    app = QApplication(sys.argv)
    w = MainWindow(config=config)
    w.show()
    sys.exit(app.exec())

if __name__ == "__main__":
    main()
