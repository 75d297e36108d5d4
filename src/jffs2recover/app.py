"""
jffs2recover - Central Application Controller

This module provides the main application interface for coordinating
JFFS2 recovery operations: configuration, logging and recovery sessions.

Author: jffs2recover developers
Version: 1.0.0
"""

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .core.jffs2_parser import Jffs2Parser
from .core.structures import ENDIANNESS_PREFIX, TimelineEvent, TreeEntry
from .exporter import SnapshotExporter
from .utils import SnapshotHasher

LOGGER_NAME = "jffs2recover"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class RecoverySession:
    """
    One image under analysis, with its output directory and parser state.
    """

    def __init__(self, session_id: str, image_path: Path, output_dir: Optional[Path]):
        """
        Initialize a recovery session.

        Args:
            session_id: Unique identifier for this session
            image_path: Path to the flash dump
            output_dir: Directory for exported snapshots (optional)
        """
        self.session_id = session_id
        self.image_path = image_path
        self.output_dir = output_dir
        self.created_at = datetime.now()
        self.parser: Optional[Jffs2Parser] = None
        self.exported: List[Dict[str, Any]] = []
        self.linked_files = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to dictionary for serialization"""
        return {
            "session_id": self.session_id,
            "image_path": str(self.image_path),
            "output_dir": str(self.output_dir) if self.output_dir else None,
            "created_at": self.created_at.isoformat(),
            "loaded": self.parser is not None and self.parser.index is not None,
            "exported_inodes": sum(1 for e in self.exported if e.get('status') == 'exported'),
            "failed_inodes": sum(1 for e in self.exported if e.get('status') == 'failed'),
            "linked_files": self.linked_files,
        }


class Jffs2RecoveryApp:
    """
    Main application class coordinating JFFS2 recovery.

    This class provides a unified interface for:
    - Image loading with the configured byte order and CRC policy
    - Tree, timeline and file history queries
    - Snapshot export and tree rebuild
    """

    def __init__(self, config_path: Optional[Path] = None,
                 overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize the application.

        Args:
            config_path: Optional path to JSON configuration file
            overrides: Settings taking precedence over the file (CLI flags)
        """
        self.config = self._load_config(config_path, overrides)
        self.sessions: Dict[str, RecoverySession] = {}
        self.logger = self._setup_logging()
        self.logger.debug("jffs2recover application initialized")

    def _load_config(self, config_path: Optional[Path],
                     overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Load application configuration.

        Args:
            config_path: Path to JSON configuration file
            overrides: Values applied last; None values are ignored

        Returns:
            Configuration dictionary with defaults

        Raises:
            ValueError: If a setting has an invalid value
        """
        default_config = {
            "version": __version__,
            "log_level": "INFO",
            "log_dir": None,
            "endianness": "big",
            "verify_header_crc": False,
            "max_file_size_mb": 500,
            "export_hash_algorithm": "sha256",
        }

        if config_path and Path(config_path).exists():
            try:
                with open(config_path, 'r') as f:
                    user_config = json.load(f)
                default_config.update(user_config)
            except (OSError, ValueError) as e:
                logging.getLogger(LOGGER_NAME).warning(f"Failed to load config from {config_path}: {e}")

        if overrides:
            default_config.update({k: v for k, v in overrides.items() if v is not None})

        self._validate_config(default_config)
        return default_config

    @staticmethod
    def _validate_config(config: Dict[str, Any]):
        if config["endianness"] not in ENDIANNESS_PREFIX:
            raise ValueError(f"Invalid endianness: {config['endianness']}")
        if not isinstance(getattr(logging, str(config["log_level"]).upper(), None), int):
            raise ValueError(f"Invalid log level: {config['log_level']}")
        if not isinstance(config["max_file_size_mb"], (int, float)) or config["max_file_size_mb"] <= 0:
            raise ValueError(f"Invalid max_file_size_mb: {config['max_file_size_mb']}")
        if config["export_hash_algorithm"] not in SnapshotHasher.ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {config['export_hash_algorithm']}")

    def _setup_logging(self) -> logging.Logger:
        """
        Configure the package logger with an audit trail.

        Returns:
            Configured logger instance
        """
        log_level = getattr(logging, str(self.config["log_level"]).upper())

        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(log_level)

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        log_dir = self.config.get("log_dir")
        if log_dir and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"jffs2recover_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        for handler in logger.handlers:
            handler.setLevel(log_level)

        return logger

    def create_session(self, image_path: str, output_dir: Optional[str] = None) -> str:
        """
        Create a new recovery session.

        Args:
            image_path: Path to the flash dump
            output_dir: Directory for exported snapshots

        Returns:
            Session ID for tracking

        Raises:
            FileNotFoundError: If image file doesn't exist
        """
        image_path_obj = Path(image_path)
        if not image_path_obj.exists():
            raise FileNotFoundError(f"Flash image not found: {image_path}")

        output_dir_obj = None
        if output_dir:
            output_dir_obj = Path(output_dir)
            output_dir_obj.mkdir(parents=True, exist_ok=True)

        session_id = hashlib.md5(
            f"{image_path}{datetime.now().isoformat()}{len(self.sessions)}".encode()
        ).hexdigest()[:16]

        self.sessions[session_id] = RecoverySession(session_id, image_path_obj, output_dir_obj)
        self.logger.info(f"Created session {session_id} for image: {image_path}")
        return session_id

    def _get_session(self, session_id: str) -> RecoverySession:
        session = self.sessions.get(session_id)
        if not session:
            raise KeyError(f"Session not found: {session_id}")
        return session

    def get_parser(self, session_id: str) -> Jffs2Parser:
        """
        Parser of a session, scanned and indexed on first use.

        Raises:
            KeyError: If session not found
        """
        session = self._get_session(session_id)
        if session.parser is None:
            parser = Jffs2Parser(
                str(session.image_path),
                endianness=self.config["endianness"],
                verify_crc=bool(self.config["verify_header_crc"]),
                max_file_size=int(self.config["max_file_size_mb"] * 1024 * 1024),
            )
            parser.open()
            parser.load()
            session.parser = parser
        return session.parser

    def analyze(self, session_id: str) -> Dict[str, Any]:
        """Load the image and return summary information"""
        self.logger.info(f"Analyzing image for session {session_id}")
        return self.get_parser(session_id).get_filesystem_info()

    def get_tree(self, session_id: str) -> List[TreeEntry]:
        return list(self.get_parser(session_id).walk_tree())

    def get_timeline(self, session_id: str) -> List[TimelineEvent]:
        return self.get_parser(session_id).timeline()

    def extract_history(self, session_id: str, inodes: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        """
        Export snapshots of the given inodes (all inodes by default).

        Raises:
            KeyError: If session not found
            ValueError: If the session has no output directory
        """
        session = self._get_session(session_id)
        if session.output_dir is None:
            raise ValueError(f"Session {session_id} has no output directory")

        exporter = SnapshotExporter(self.get_parser(session_id), str(session.output_dir),
                                    self.config["export_hash_algorithm"])
        results = exporter.export_all(inodes)
        session.exported.extend(results)
        return results

    def rebuild_tree(self, session_id: str) -> int:
        """Link a previous export into a directory tree"""
        session = self._get_session(session_id)
        if session.output_dir is None:
            raise ValueError(f"Session {session_id} has no output directory")

        exporter = SnapshotExporter(self.get_parser(session_id), str(session.output_dir),
                                    self.config["export_hash_algorithm"])
        session.linked_files = exporter.rebuild_tree()
        return session.linked_files

    def get_session_info(self, session_id: str) -> Dict[str, Any]:
        """
        Get information about a session.

        Raises:
            KeyError: If session not found
        """
        return self._get_session(session_id).to_dict()

    def list_sessions(self) -> List[Dict[str, Any]]:
        """List all active sessions"""
        return [session.to_dict() for session in self.sessions.values()]

    def cleanup_session(self, session_id: str) -> None:
        """
        Close a session and release its image.

        Raises:
            KeyError: If session not found
        """
        session = self._get_session(session_id)
        self.logger.info(f"Cleaning up session {session_id}")
        if session.parser is not None:
            session.parser.close()
        del self.sessions[session_id]
