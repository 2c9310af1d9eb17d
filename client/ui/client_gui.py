#!/usr/bin/env python3
"""
LAN File Sharing Client - GUI

PyQt6 window showing the shared table of uploaded files with buttons to
upload a file and to download the selected rows. Networking runs on an
asyncio loop inside a QThread; results come back through Qt signals.
"""

import asyncio
import sys
import threading
from pathlib import Path
from typing import List, Optional

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton,
    QTableWidget, QTableWidgetItem, QHeaderView, QFileDialog, QMessageBox, QAbstractItemView
)
from PyQt6.QtCore import Qt, QThread, QUrl, pyqtSignal
from PyQt6.QtGui import QDesktopServices

from client.files.file_client import FileClient
from client.utils.config import ClientConfig
from client.utils.logger import logger
from common.constants import DEFAULT_HOST, DEFAULT_PORT
from common.errors import EncodingError
from common.table import TableEntry

TIME_COLUMN = 0
FILE_COLUMN = 1
LINK_COLUMN = 2


class NetworkThread(QThread):
    """Thread for handling network communication."""

    table_updated = pyqtSignal(list)  # List[TableEntry]
    file_downloaded = pyqtSignal(str)  # saved path
    download_finished = pyqtSignal(object)  # DownloadResult
    message = pyqtSignal(str, str)  # level, text
    connected = pyqtSignal()
    disconnected = pyqtSignal()
    connection_failed = pyqtSignal(str)

    def __init__(self, config: ClientConfig):
        super().__init__()
        self.config = config
        self.file_client: Optional[FileClient] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.loop_ready = threading.Event()

    def run(self):
        """Run network loop."""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._connect_and_listen())
        finally:
            self.loop.close()

    async def _connect_and_listen(self):
        """Connect to server and listen for frames."""
        self.file_client = FileClient(
            **self.config.get_connection_info(), logger=logger,
            read_chunk_size=self.config.read_chunk_size,
            download_idle_timeout=self.config.download_idle_timeout
        )
        self.file_client.on_table_updated = self.table_updated.emit
        self.file_client.on_file_downloaded = lambda path: self.file_downloaded.emit(str(path))

        try:
            await self.file_client.connect()
        except ConnectionError as e:
            self.connection_failed.emit(str(e))
            return

        self.loop_ready.set()
        self.connected.emit()
        try:
            await self.file_client.wait_closed()
        finally:
            self.disconnected.emit()

    def upload(self, file_path: str):
        """Upload a file from the GUI thread."""
        self._submit(self._upload(file_path))

    def download(self, file_names: List[str], target_dir: str):
        """Download files from the GUI thread."""
        self._submit(self._download(file_names, target_dir))

    def stop(self):
        """Close the connection and let the loop finish."""
        if self.loop_ready.is_set() and self.file_client:
            asyncio.run_coroutine_threadsafe(self.file_client.close(), self.loop)

    def _submit(self, coro):
        if not self.loop_ready.is_set():
            coro.close()
            self.message.emit('critical', "Not connected!")
            return
        asyncio.run_coroutine_threadsafe(coro, self.loop)

    async def _upload(self, file_path: str):
        try:
            size = await self.file_client.upload_file(file_path)
        except ConnectionError as e:
            self.message.emit('critical', str(e))
        except (EncodingError, OSError) as e:
            self.message.emit('warning', str(e))
        else:
            self.message.emit('info', f"Sent {Path(file_path).name} ({size} bytes)")

    async def _download(self, file_names: List[str], target_dir: str):
        try:
            result = await self.file_client.download_files(file_names, target_dir)
        except ConnectionError as e:
            self.message.emit('critical', str(e))
        except (EncodingError, OSError) as e:
            self.message.emit('warning', f"Download failed: {e}")
        else:
            self.download_finished.emit(result)


class ClientMainWindow(QMainWindow):
    """Main application window."""

    def __init__(self, server_host: str = DEFAULT_HOST, server_port: int = DEFAULT_PORT):
        super().__init__()
        self.config = ClientConfig(server_host, server_port)
        self.network_thread: Optional[NetworkThread] = None

        self.setup_ui()
        self.setup_connections()

    def setup_ui(self):
        """Setup the main window UI."""
        self.setWindowTitle("LAN File Sharing Client")
        self.setGeometry(100, 100, 900, 500)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout()

        self.table_widget = QTableWidget(0, 3)
        self.table_widget.setHorizontalHeaderLabels(["Time", "File", "Link"])
        self.table_widget.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.table_widget.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.table_widget.setSelectionMode(QAbstractItemView.SelectionMode.ExtendedSelection)
        main_layout.addWidget(self.table_widget)

        buttons = QHBoxLayout()
        self.save_button = QPushButton("Save")
        self.load_button = QPushButton("Load")
        buttons.addWidget(self.save_button)
        buttons.addWidget(self.load_button)
        main_layout.addLayout(buttons)

        central_widget.setLayout(main_layout)

    def setup_connections(self):
        """Setup signal-slot connections."""
        self.save_button.clicked.connect(self.on_save_clicked)
        self.load_button.clicked.connect(self.on_load_clicked)
        self.table_widget.cellDoubleClicked.connect(self.on_cell_double_clicked)

    # ========================================================================
    # CONNECTION & NETWORKING
    # ========================================================================

    def connect_to_server(self):
        """Start the network thread."""
        self.setWindowTitle(f"LAN File Sharing Client - Connecting to {self.config.host}:{self.config.port}...")
        logger.debug(f"Transfer settings: {self.config.get_transfer_settings()}")
        self.network_thread = NetworkThread(self.config)
        self.network_thread.table_updated.connect(self.update_table)
        self.network_thread.file_downloaded.connect(self.on_file_downloaded)
        self.network_thread.download_finished.connect(self.on_download_finished)
        self.network_thread.message.connect(self.display_message)
        self.network_thread.connected.connect(self.on_connected)
        self.network_thread.disconnected.connect(self.on_disconnected)
        self.network_thread.connection_failed.connect(self.on_connection_failed)
        self.network_thread.start()

    def on_connected(self):
        self.setWindowTitle(f"LAN File Sharing Client - {self.config.host}:{self.config.port}")
        self.statusBar().showMessage("Connected to Server")

    def on_disconnected(self):
        self.table_widget.setRowCount(0)
        self.setWindowTitle("LAN File Sharing Client - Disconnected")
        self.statusBar().showMessage("Disconnected!")

    def on_connection_failed(self, error: str):
        logger.critical(error)
        QMessageBox.critical(self, "LAN File Sharing Client", error)
        QApplication.exit(1)

    # ========================================================================
    # TABLE
    # ========================================================================

    def update_table(self, entries: List[TableEntry]):
        """Replace the table contents with a new snapshot."""
        self.table_widget.setRowCount(0)
        for entry in entries:
            self.insert_row(entry)

    def insert_row(self, entry: TableEntry):
        row = self.table_widget.rowCount()
        self.table_widget.insertRow(row)
        flags = Qt.ItemFlag.ItemIsSelectable | Qt.ItemFlag.ItemIsEnabled  # read only
        for column, text in ((TIME_COLUMN, entry.timestamp), (FILE_COLUMN, entry.file_name),
                             (LINK_COLUMN, entry.link)):
            item = QTableWidgetItem(text)
            item.setFlags(flags)
            self.table_widget.setItem(row, column, item)

    def selected_file_names(self) -> List[str]:
        """File names of the selected rows, top to bottom."""
        rows = sorted({item.row() for item in self.table_widget.selectedItems()})
        names = []
        for row in rows:
            item = self.table_widget.item(row, FILE_COLUMN)
            if item is not None:
                names.append(item.text())
                logger.debug(f"Selected file name: {item.text()}")
        return names

    def on_cell_double_clicked(self, row: int, column: int):
        """Open the stored file when its link is double-clicked."""
        if column != LINK_COLUMN:
            return
        item = self.table_widget.item(row, column)
        if item is not None:
            QDesktopServices.openUrl(QUrl(item.text(), QUrl.ParsingMode.TolerantMode))

    # ========================================================================
    # FILE TRANSFER
    # ========================================================================

    def on_save_clicked(self):
        """Pick a file and upload it."""
        file_path, _ = QFileDialog.getOpenFileName(self, "Select file to save", self.config.save_dir, "File (*)")
        if not file_path:
            return
        self.config.save_dir = str(Path(file_path).parent)
        self.network_thread.upload(file_path)

    def on_load_clicked(self):
        """Pick a directory and download the selected files into it."""
        file_names = self.selected_file_names()
        if not file_names:
            self.display_message('info', "Select the files to load in the table first")
            return

        dir_path = QFileDialog.getExistingDirectory(
            self, "Open Directory to save files", self.config.load_dir,
            QFileDialog.Option.ShowDirsOnly | QFileDialog.Option.DontResolveSymlinks
        )
        if not dir_path:
            return
        self.config.load_dir = dir_path
        self.network_thread.download(file_names, dir_path)

    def on_file_downloaded(self, path: str):
        self.statusBar().showMessage(f"Saved {path}")

    def on_download_finished(self, result):
        if result.missing:
            self.display_message('warning', f"Not received from server: {', '.join(result.missing)}")
        else:
            self.statusBar().showMessage(f"{len(result.received)} file(s) saved to {result.target_dir}")

    # ========================================================================
    # MESSAGES
    # ========================================================================

    def display_message(self, level: str, text: str):
        """Show a message according to its severity."""
        if level == 'debug':
            logger.debug(text)
        elif level == 'info':
            logger.info(text)
            self.statusBar().showMessage(text)
        elif level == 'warning':
            logger.warning(text)
            QMessageBox.warning(self, "LAN File Sharing Client", text)
        else:
            logger.critical(text)
            QMessageBox.critical(self, "LAN File Sharing Client", text)

    def closeEvent(self, event):
        """Close the connection before the window goes away."""
        if self.network_thread is not None:
            self.network_thread.stop()
            self.network_thread.wait(5000)
        super().closeEvent(event)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main():
    """Main entry point."""
    app = QApplication(sys.argv)
    window = ClientMainWindow()
    window.show()
    window.connect_to_server()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
