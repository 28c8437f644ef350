# VMD Motion Optimizer by Barış Keser (barkeser2002)
# License: GNU General Public License v3.0 (GPL-3.0)
# See LICENSE for details.

import json
import sys
from pathlib import Path
from typing import List, Optional

from PyQt6 import QtCore, QtWidgets, QtGui

from blend_bouncer import BlendReport, check_blend_files, read_version, resource_path


class Worker(QtCore.QThread):
    progress_signal = QtCore.pyqtSignal(str, int, int)
    done_signal = QtCore.pyqtSignal(object)
    error_signal = QtCore.pyqtSignal(str)

    def __init__(self, paths: List[str], strict_names: bool = False, parent=None):
        super().__init__(parent)
        self.paths = paths
        self.strict_names = strict_names

    def run(self):
        try:
            def on_progress(section: str, i: int, total: int):
                self.progress_signal.emit(section, i, total)
            reports = check_blend_files(self.paths, strict_names=self.strict_names, progress=on_progress)
            self.done_signal.emit(reports)
        except Exception as e:
            self.error_signal.emit(str(e))


class MainWindow(QtWidgets.QWidget):
    def __init__(self):
        super().__init__()
        ver = read_version()
        self.setWindowTitle(f"Blend Bouncer v{ver}")
        self.resize(760, 600)

        # Dosya listesi
        self.file_list = QtWidgets.QListWidget()
        self.file_list.setSelectionMode(QtWidgets.QAbstractItemView.SelectionMode.ExtendedSelection)
        self.add_btn = QtWidgets.QPushButton("Blend Seç...")
        self.clear_btn = QtWidgets.QPushButton("Temizle")
        self.strict_check = QtWidgets.QCheckBox("UTF-8 olmayan sahne adı hata sayılsın")

        self.start_btn = QtWidgets.QPushButton("Kontrol Et")
        self.export_btn = QtWidgets.QPushButton("JSON Dışa Aktar")
        self.export_btn.setEnabled(False)
        self.progress = QtWidgets.QProgressBar(); self.progress.setRange(0, 100)

        self.tree = QtWidgets.QTreeWidget()
        self.tree.setHeaderLabels(["Dosya / Sahne", "Sürüm", "Başlangıç", "Bitiş", "Kare"])
        self.log = QtWidgets.QPlainTextEdit(); self.log.setReadOnly(True)

        self.credit = QtWidgets.QLabel(f"Blend Bouncer — GPL-3.0 — v{ver}")
        self.credit.setStyleSheet("color: gray; font-size: 11px;")

        buttons = QtWidgets.QHBoxLayout()
        buttons.addWidget(self.add_btn)
        buttons.addWidget(self.clear_btn)
        buttons.addStretch(1)
        buttons.addWidget(self.strict_check)

        actions = QtWidgets.QHBoxLayout()
        actions.addWidget(self.start_btn)
        actions.addWidget(self.export_btn)

        v = QtWidgets.QVBoxLayout(self)
        v.addWidget(self.file_list)
        v.addLayout(buttons)
        v.addLayout(actions)
        v.addWidget(self.progress)
        v.addWidget(self.tree, 2)
        v.addWidget(self.log, 1)
        v.addWidget(self.credit)

        # signals
        self.add_btn.clicked.connect(self.select_inputs)
        self.clear_btn.clicked.connect(self.clear)
        self.start_btn.clicked.connect(self.start)
        self.export_btn.clicked.connect(self.export_json)

        self.worker: Optional[Worker] = None
        self.reports: List[BlendReport] = []

    def log_text(self, s: str):
        self.log.appendPlainText(s)

    def paths(self) -> List[str]:
        return [self.file_list.item(i).text() for i in range(self.file_list.count())]

    def add_paths(self, paths: List[str]):
        known = set(self.paths())
        for p in paths:
            if p not in known:
                self.file_list.addItem(p)
                known.add(p)

    def select_inputs(self):
        paths, _ = QtWidgets.QFileDialog.getOpenFileNames(
            self, "Blend seç", str(Path.cwd()), "Blend Files (*.blend *.blend1);;All Files (*)")
        if paths:
            self.add_paths(paths)

    def clear(self):
        self.file_list.clear()
        self.tree.clear()
        self.reports = []
        self.export_btn.setEnabled(False)
        self.progress.setValue(0)

    def start(self):
        paths = self.paths()
        if not paths:
            self.log_text("Önce dosya seçin")
            return
        if self.worker is not None and self.worker.isRunning():
            return

        self.progress.setValue(0)
        self.tree.clear()
        self.start_btn.setEnabled(False)
        self.log_text("Başladı...")

        self.worker = Worker(paths, strict_names=self.strict_check.isChecked())
        self.worker.progress_signal.connect(self.on_progress)
        self.worker.done_signal.connect(self.on_done)
        self.worker.error_signal.connect(self.on_error)
        self.worker.start()

    def show_reports(self, reports: List[BlendReport]):
        self.tree.clear()
        for r in reports:
            top = QtWidgets.QTreeWidgetItem([r.path, r.version or "", "", "", ""])
            top.setForeground(0, QtGui.QBrush(QtGui.QColor("green" if r.valid else "red")))
            for name, rec in sorted(r.scenes.items()):
                frames = rec.frames
                QtWidgets.QTreeWidgetItem(top, [name, rec.version, str(frames.start),
                                                str(frames.end), str(frames.count)])
            self.tree.addTopLevelItem(top)
            top.setExpanded(True)
            if not r.valid:
                self.log_text(f"✖ {r.path}: blend dosyası değil ({r.error})")
            elif r.error:
                self.log_text(f"Hata: {r.path} okunamadı: {r.error}")

    @QtCore.pyqtSlot(str, int, int)
    def on_progress(self, section: str, i: int, total: int):
        pct = int((i / max(total, 1)) * 100)
        self.progress.setValue(max(0, min(100, pct)))

    @QtCore.pyqtSlot(object)
    def on_done(self, reports: List[BlendReport]):
        self.progress.setValue(100)
        self.start_btn.setEnabled(True)
        self.reports = reports
        self.show_reports(reports)
        self.export_btn.setEnabled(bool(reports))
        valid = sum(1 for r in reports if r.valid)
        self.log_text(f"Bitti. {valid}/{len(reports)} geçerli")

    @QtCore.pyqtSlot(str)
    def on_error(self, msg: str):
        self.start_btn.setEnabled(True)
        self.log_text("Hata: " + msg)

    def export_json(self):
        path, _ = QtWidgets.QFileDialog.getSaveFileName(
            self, "Sonuçları dışa aktar", str(Path.cwd() / "blends.json"), "JSON (*.json)")
        if path:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump([r.to_dict() for r in self.reports], f, ensure_ascii=False, indent=2)
            self.log_text("Kaydedildi: " + path)


def main():
    app = QtWidgets.QApplication(sys.argv)
    app.setApplicationName("Blend Bouncer")
    # Uygulama ikonu: önce icon.ico, yoksa logo.png
    icon_path = resource_path('icon.ico')
    if not icon_path:
        icon_path = resource_path('logo.png')
    if icon_path:
        app.setWindowIcon(QtGui.QIcon(icon_path))
    w = MainWindow()
    w.add_paths(sys.argv[1:])
    w.show()
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
