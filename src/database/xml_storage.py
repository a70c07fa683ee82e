# src/database/xml_storage.py
# Armazenamento dos XMLs das NFes no sistema de arquivos, em <raiz>/AAAA/MM/<chave>.xml.

import os
import tempfile

from src.utils.logger import logger
from src.api.errors import NotFoundError, XmlStorageError


class FileSystemXmlStorage:
    """
    Artifact store backed by a local directory.
    Writes are atomic (temp file + rename) and never overwrite an existing file,
    so a re-sync or a concurrent run cannot clobber an already stored XML.
    """

    def __init__(self, base_path: str):
        if not base_path:
            raise XmlStorageError("Diretório base de armazenamento de XML não configurado.")
        self.base_path = os.path.abspath(base_path)
        try:
            os.makedirs(self.base_path, exist_ok=True)
        except OSError as e:
            raise XmlStorageError(f"Não foi possível criar o diretório de XMLs '{self.base_path}': {e}") from e
        logger.debug(f"FileSystemXmlStorage inicializado em {self.base_path}")

    def _resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.base_path, path))
        if os.path.commonpath([self.base_path, full_path]) != self.base_path:
            raise XmlStorageError(f"Caminho de XML fora do diretório de armazenamento: '{path}'")
        return full_path

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._resolve(path))

    def write(self, path: str, data: bytes) -> None:
        full_path = self._resolve(path)
        if os.path.isfile(full_path):
            logger.debug(f"XML já existe em '{path}', escrita ignorada.")
            return

        directory = os.path.dirname(full_path)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, full_path)
            tmp_path = None
            logger.debug(f"XML salvo em '{path}' ({len(data)} bytes).")
        except OSError as e:
            logger.error(f"Erro ao gravar XML em '{path}': {e}", exc_info=True)
            raise XmlStorageError(f"Falha ao gravar XML em '{path}': {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def read(self, path: str) -> bytes:
        full_path = self._resolve(path)
        if not os.path.isfile(full_path):
            raise NotFoundError(f"Arquivo XML não encontrado: '{path}'")
        try:
            with open(full_path, "rb") as f:
                return f.read()
        except OSError as e:
            logger.error(f"Erro ao ler XML '{path}': {e}", exc_info=True)
            raise XmlStorageError(f"Falha ao ler XML '{path}': {e}") from e
