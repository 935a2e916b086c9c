"""Launch the SpiralVase GUI."""
import logging
import sys

from PyQt6.QtWidgets import QApplication

from spiralvase.ui.wizard import SpiralWizard


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)
    app.setApplicationName("SpiralVase")

    wizard = SpiralWizard()
    wizard.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
