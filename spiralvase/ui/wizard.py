"""SpiralVase – Step-by-step wizard flow (PyQt6).

Guides the user through:
  1. Pick file
  2. Spiral options
  3. Confirm & save
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from PyQt6.QtWidgets import (
    QCheckBox,
    QDoubleSpinBox,
    QFileDialog,
    QLabel,
    QMessageBox,
    QPushButton,
    QRadioButton,
    QSpinBox,
    QVBoxLayout,
    QWizard,
    QWizardPage,
)

from spiralvase.app.controller import SpiralVaseController


# ---------------------------------------------------------------------------
# Page 1 – Pick G-code file
# ---------------------------------------------------------------------------

class FilePickerPage(QWizardPage):
    """Wizard page: select the sliced .gcode file."""

    def __init__(self, parent: Optional[QWizard] = None) -> None:
        super().__init__(parent)
        self.setTitle("Select G-code File")
        self.setSubTitle("Choose the sliced .gcode file to turn into a spiral.")

        layout = QVBoxLayout(self)

        self.path_label = QLabel("No file selected")
        self.path_label.setWordWrap(True)
        layout.addWidget(self.path_label)

        btn = QPushButton("Browse…")
        btn.clicked.connect(self._browse)
        layout.addWidget(btn)

        self._file_path: str = ""

    def _browse(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self,
            "Select G-code File",
            "",
            "G-code Files (*.gcode *.gco *.g);;All Files (*)",
        )
        if path:
            self._file_path = path
            self.path_label.setText(path)
            self.completeChanged.emit()

    def isComplete(self) -> bool:  # type: ignore[override]
        return bool(self._file_path) and os.path.isfile(self._file_path)

    def file_path(self) -> str:
        return self._file_path


# ---------------------------------------------------------------------------
# Page 2 – Spiral options
# ---------------------------------------------------------------------------

class SpiralOptionsPage(QWizardPage):
    """Wizard page: where spiraling starts and how it is shaped."""

    def __init__(self, parent: Optional[QWizard] = None) -> None:
        super().__init__(parent)
        self.setTitle("Spiral Options")
        self.setSubTitle("Choose where the spiral starts and whether to smooth the seam.")

        layout = QVBoxLayout(self)

        self.radio_auto = QRadioButton("After the bottom layers (from file settings)")
        self.radio_auto.setChecked(True)
        layout.addWidget(self.radio_auto)

        self.radio_layer = QRadioButton("Layer Number")
        layout.addWidget(self.radio_layer)

        self.layer_spin = QSpinBox()
        self.layer_spin.setRange(0, 999999)
        self.layer_spin.setValue(3)
        self.layer_spin.setEnabled(False)
        layout.addWidget(self.layer_spin)

        self.radio_z = QRadioButton("Z Height (mm)")
        layout.addWidget(self.radio_z)

        self.z_spin = QDoubleSpinBox()
        self.z_spin.setRange(0.01, 9999.99)
        self.z_spin.setDecimals(2)
        self.z_spin.setSuffix(" mm")
        self.z_spin.setValue(0.80)
        self.z_spin.setEnabled(False)
        layout.addWidget(self.z_spin)

        self.radio_layer.toggled.connect(lambda on: self.layer_spin.setEnabled(on))
        self.radio_z.toggled.connect(lambda on: self.z_spin.setEnabled(on))

        self.smooth_check = QCheckBox("Smooth XY toward the previous loop")
        layout.addWidget(self.smooth_check)

        self.transition_check = QCheckBox("Taper extrusion in on the first spiral layer")
        self.transition_check.setChecked(True)
        layout.addWidget(self.transition_check)

    def start_layer(self) -> Optional[int]:
        return self.layer_spin.value() if self.radio_layer.isChecked() else None

    def start_z(self) -> Optional[float]:
        return self.z_spin.value() if self.radio_z.isChecked() else None

    def smooth(self) -> bool:
        return self.smooth_check.isChecked()

    def transition(self) -> bool:
        return self.transition_check.isChecked()


# ---------------------------------------------------------------------------
# Page 3 – Confirm
# ---------------------------------------------------------------------------

class ConfirmPage(QWizardPage):
    """Wizard page: show summary and confirm generation."""

    def __init__(self, parent: Optional[QWizard] = None) -> None:
        super().__init__(parent)
        self.setTitle("Confirm")
        self.setSubTitle("Review the settings below. Click Finish to write the spiral file.")

        layout = QVBoxLayout(self)
        self.summary_label = QLabel()
        self.summary_label.setWordWrap(True)
        layout.addWidget(self.summary_label)

    def initializePage(self) -> None:  # type: ignore[override]
        wizard: SpiralWizard = self.wizard()  # type: ignore[assignment]
        options = wizard.options_page
        lines: list[str] = []
        lines.append(f"<b>File:</b> {Path(wizard.gcode_path()).name}")

        if options.start_layer() is not None:
            lines.append(f"<b>Spiral from layer:</b> {options.start_layer()}")
        elif options.start_z() is not None:
            lines.append(f"<b>Spiral from Z:</b> {options.start_z():.2f} mm")
        else:
            lines.append("<b>Spiral from:</b> first layer after the bottom layers")

        lines.append(f"<b>Smoothing:</b> {'on' if options.smooth() else 'off'}")
        lines.append(f"<b>Transition taper:</b> {'on' if options.transition() else 'off'}")
        self.summary_label.setText("<br>".join(lines))


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------

class SpiralWizard(QWizard):
    """Step-by-step wizard for spiral G-code generation."""

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("SpiralVase")
        self.setMinimumSize(440, 380)

        self.file_page = FilePickerPage()
        self.options_page = SpiralOptionsPage()
        self.confirm_page = ConfirmPage()

        self.addPage(self.file_page)
        self.addPage(self.options_page)
        self.addPage(self.confirm_page)

        self.controller = SpiralVaseController()

    def gcode_path(self) -> str:
        return self.file_page.file_path()

    def accept(self) -> None:  # type: ignore[override]
        """Called when user clicks Finish: generate the file."""
        src = Path(self.gcode_path())
        default_path = str(src.parent / f"{src.stem}_spiral{src.suffix or '.gcode'}")

        save_path, _ = QFileDialog.getSaveFileName(
            self,
            "Save Spiral G-code",
            default_path,
            "G-code Files (*.gcode);;All Files (*)",
        )
        if not save_path:
            return  # user cancelled, stay in wizard

        options = self.options_page
        try:
            result = self.controller.process(
                gcode_path=str(src),
                start_layer=options.start_layer(),
                start_z=options.start_z(),
                smooth=options.smooth(),
                transition=options.transition(),
                output_path=save_path,
            )
        except (RuntimeError, KeyError, ValueError, OSError) as exc:
            QMessageBox.critical(self, "Error", str(exc))
            return  # stay in wizard on error

        message = (
            f"Spiral G-code saved to:\n{result.output_path}\n\n"
            f"{result.spiral_layers} of {result.total_layers} layers spiralized "
            f"from layer {result.start_layer}."
        )
        if result.warnings:
            message += "\n\nWarnings:\n" + "\n".join(f"• {w}" for w in result.warnings)
        QMessageBox.information(self, "Success", message)

        super().accept()
