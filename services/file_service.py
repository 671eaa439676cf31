"""
File Service

Stores proof-of-delivery documents on local disk under UPLOAD_FOLDER.
"""

from typing import Optional, Tuple
import logging
import os
from werkzeug.utils import secure_filename
from flask import current_app
import timezone_utils

logger = logging.getLogger(__name__)

POD_SUBFOLDER = 'pods'


class FileService:
    """Service class for proof-of-delivery file storage"""

    ALLOWED_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg'}
    MAX_FILE_SIZE = 16 * 1024 * 1024  # 16MB

    def allowed_file(self, filename: str) -> bool:
        """Check if file extension is allowed."""
        return '.' in filename and \
               filename.rsplit('.', 1)[1].lower() in self.ALLOWED_EXTENSIONS

    def upload_root(self) -> str:
        folder = current_app.config.get('UPLOAD_FOLDER', 'uploads')
        if not os.path.isabs(folder):
            folder = os.path.join(current_app.root_path, folder)
        return folder

    def store_pod(self, trip_id: int, file) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Save an uploaded POD document for a trip.

        Args:
            trip_id: ID of the trip the document belongs to
            file: Werkzeug FileStorage (or anything with filename/save/seek/tell)

        Returns:
            tuple: (success: bool, url: str, error_message: str)
        """
        if not file or not file.filename:
            return False, None, "No file provided"

        if not self.allowed_file(file.filename):
            return False, None, f"File type not allowed. Allowed types: {', '.join(sorted(self.ALLOWED_EXTENSIONS))}"

        file.seek(0, 2)
        file_size = file.tell()
        file.seek(0)

        if file_size > self.MAX_FILE_SIZE:
            return False, None, f"File too large. Maximum size: {self.MAX_FILE_SIZE // (1024*1024)}MB"

        original_filename = secure_filename(file.filename)
        timestamp = timezone_utils.now().strftime('%Y%m%d_%H%M%S')
        filename = f"trip_{trip_id}_{timestamp}_{original_filename}"

        upload_folder = os.path.join(self.upload_root(), POD_SUBFOLDER)
        try:
            os.makedirs(upload_folder, exist_ok=True)
            file.save(os.path.join(upload_folder, filename))
        except OSError as e:
            logger.error(f"Error saving POD for trip {trip_id}: {str(e)}")
            return False, None, f"Upload failed: {str(e)}"

        logger.info(f"POD stored for trip {trip_id}: {filename} ({file_size} bytes)")
        return True, f"/uploads/{POD_SUBFOLDER}/{filename}", None

    def delete_pod(self, url: str) -> bool:
        """
        Remove a stored POD by the URL store_pod returned.

        Returns:
            bool: True if a file was deleted
        """
        prefix = f"/uploads/{POD_SUBFOLDER}/"
        if not url or not url.startswith(prefix):
            return False
        file_path = os.path.join(self.upload_root(), POD_SUBFOLDER, secure_filename(url[len(prefix):]))
        if not os.path.exists(file_path):
            logger.warning(f"POD file not found for deletion: {url}")
            return False
        os.remove(file_path)
        logger.info(f"POD deleted: {url}")
        return True
