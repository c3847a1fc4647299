"""目录存储：把相对路径映射到存储根目录下的物理位置，并执行列表、新建、重命名、删除与写入。

物理目录树是条目是否存在的唯一依据；本模块不接触元数据索引。
"""

from __future__ import annotations

import os
import shutil
import tempfile
from contextlib import suppress
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Sequence

from app.packages.filestore.core.constants import HTTP_STATUS_BAD_REQUEST
from app.packages.filestore.core.exceptions import (
    ConflictError,
    InvalidInputError,
    IOFailureError,
    NotFoundError,
)
from app.packages.filestore.core.logger import logger
from app.packages.filestore.services.entries import Entry, FileEntry, FolderEntry
from app.packages.filestore.utils.path_utils import join_rel_path, normalize_rel_path, validate_name

DEFAULT_CHUNK_SIZE = 1024 * 1024

# 重命名/删除的目标不存在时沿用 400，与前端约定保持一致
_MISSING_ITEM_STATUS = HTTP_STATUS_BAD_REQUEST

WalkErrorCallback = Callable[[str, OSError], None]


def _timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _candidate_names(requested: str) -> Iterator[str]:
    yield requested
    for counter in count(1):
        yield f"{requested}-{counter}"


def _present(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def upload_name(original_name: Optional[str]) -> str:
    """客户端上报的文件名只保留最后一段，兼容 Windows 风格的完整路径。"""
    return validate_name(os.path.basename((original_name or "").replace("\\", "/")), "文件名")


class DirectoryStore:
    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root).resolve()
        if not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:  # pragma: no cover - 极端情况下可能失败
                raise IOFailureError(f"无法创建存储根目录: {exc}") from exc

    # ----------------------------
    # 路径解析
    # ----------------------------
    def resolve(self, rel: str | None) -> Path:
        """安全拼接相对路径，越出存储根目录时抛出 ``InvalidInputError``。"""
        candidate = (self.root / normalize_rel_path(rel)).resolve()
        if not self.contains(candidate):
            raise InvalidInputError("非法路径: 越权访问")
        return candidate

    def contains(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self.root)
        except (ValueError, OSError):
            return False
        return True

    def is_dir(self, rel: str | None) -> bool:
        return self.resolve(rel).is_dir()

    def _require_dir(self, rel: str, missing_msg: str) -> Path:
        path = self.resolve(rel)
        if not path.exists():
            raise NotFoundError(missing_msg)
        if not path.is_dir():
            raise InvalidInputError("目标不是文件夹")
        return path

    def _locate(self, parent: str, name: str) -> tuple[Path, str]:
        """定位 ``parent/name``，不跟随 ``name`` 本身的符号链接。"""
        parent_rel = normalize_rel_path(parent)
        return self.resolve(parent_rel) / name, join_rel_path(parent_rel, name)

    def _escapes_root(self, child: os.DirEntry) -> bool:
        return child.is_symlink() and not self.contains(Path(child.path))

    def entry_for(self, abs_path: Path, rel: str, *, is_dir: bool) -> Entry:
        st = abs_path.stat()
        created = getattr(st, "st_birthtime", None)
        if created is None:
            created = st.st_ctime
        name = abs_path.name
        if is_dir:
            return FolderEntry(name=name, path=rel, created_at=_timestamp(created), modified_at=_timestamp(st.st_mtime))
        return FileEntry(
            name=name,
            path=rel,
            created_at=_timestamp(created),
            modified_at=_timestamp(st.st_mtime),
            size=int(st.st_size),
        )

    # ----------------------------
    # 查询
    # ----------------------------
    def list(self, rel: str | None) -> list[Entry]:
        """返回目录的直接子项（未排序）。"""
        rel_path = normalize_rel_path(rel)
        base = self._require_dir(rel_path, "路径不存在")
        entries: list[Entry] = []
        try:
            with os.scandir(base) as it:
                for child in it:
                    try:
                        if self._escapes_root(child):
                            logger.warning("store.list link outside root skipped entry=%s", child.name)
                            continue
                        entries.append(
                            self.entry_for(Path(child.path), join_rel_path(rel_path, child.name), is_dir=child.is_dir())
                        )
                    except OSError as exc:
                        logger.warning("store.list skip entry=%s error=%s", child.name, exc)
        except PermissionError as exc:
            raise IOFailureError("无法读取目录内容：权限不足") from exc
        except OSError as exc:
            raise IOFailureError(f"无法读取目录内容: {exc}") from exc
        return entries

    def walk(self, rel: str | None = "", *, on_error: Optional[WalkErrorCallback] = None) -> Iterator[Entry]:
        """深度优先遍历子树，逐个产出后代条目（不含起点自身）。

        - 目录符号链接只作为条目产出，不进入，子树内容只按真实路径出现一次；
        - 指向存储根目录之外的符号链接（文件或目录）直接跳过；
        - 以 (st_dev, st_ino) 记录已访问目录，挂载点等造成的重复目录只遍历一次；
        - 无法读取的目录记录警告后跳过，不中断整个遍历。
        """
        start_rel = normalize_rel_path(rel)
        start = self._require_dir(start_rel, "路径不存在")
        visited: set[tuple[int, int]] = set()
        stack: list[tuple[Path, str]] = [(start, start_rel)]

        while stack:
            abs_dir, rel_dir = stack.pop()
            try:
                st = abs_dir.stat()
                marker = (st.st_dev, st.st_ino)
                if marker in visited:
                    logger.warning("store.walk cycle skipped path=%s", rel_dir)
                    continue
                visited.add(marker)
                with os.scandir(abs_dir) as it:
                    children = sorted(it, key=lambda item: item.name)
            except OSError as exc:
                logger.warning("store.walk skip unreadable path=%s error=%s", rel_dir, exc)
                if on_error is not None:
                    on_error(rel_dir, exc)
                continue

            subdirs: list[tuple[Path, str]] = []
            for child in children:
                child_path = Path(child.path)
                child_rel = join_rel_path(rel_dir, child.name)
                try:
                    if self._escapes_root(child):
                        logger.warning("store.walk link outside root skipped path=%s", child_rel)
                        continue
                    is_dir = child.is_dir()
                    is_link = child.is_symlink()
                    entry = self.entry_for(child_path, child_rel, is_dir=is_dir)
                except OSError as exc:
                    logger.warning("store.walk skip entry path=%s error=%s", child_rel, exc)
                    if on_error is not None:
                        on_error(child_rel, exc)
                    continue
                yield entry
                if is_dir and not is_link:
                    subdirs.append((child_path, child_rel))
            stack.extend(reversed(subdirs))

    # ----------------------------
    # 变更
    # ----------------------------
    def create_folder(self, parent: str | None, requested: str, *, subfolders: Sequence[str] = ()) -> str:
        """创建文件夹，重名时依次尝试 ``name-1``、``name-2``……，从不覆盖已有条目。

        ``subfolders`` 任一创建失败时整体回滚（删除刚创建的文件夹）并抛出 ``IOFailureError``。
        """
        parent_dir = self._require_dir(normalize_rel_path(parent), "父目录不存在")
        name = validate_name(requested, "文件夹名称")

        for candidate in _candidate_names(name):
            target = parent_dir / candidate
            if _present(target):
                continue
            try:
                target.mkdir()
            except FileExistsError:
                # 并发请求抢先创建了同名目录，继续尝试下一个后缀
                continue
            except OSError as exc:
                raise IOFailureError(f"创建文件夹失败: {exc}") from exc
            break

        for sub in subfolders:
            try:
                (target / sub).mkdir()
            except OSError as exc:
                shutil.rmtree(target, ignore_errors=True)
                logger.error("store.create_folder subfolder failed folder=%s sub=%s error=%s", candidate, sub, exc)
                raise IOFailureError(f"创建子文件夹 {sub} 失败，已撤销文件夹 {candidate}: {exc}") from exc
        return candidate

    def rename(self, parent: str | None, old_name: str, new_name: str) -> tuple[str, str]:
        """重命名 ``parent/old_name`` 为 ``parent/new_name``，返回新旧相对路径。"""
        old = validate_name(old_name, "原名称")
        new = validate_name(new_name, "新名称")
        src, src_rel = self._locate(parent or "", old)
        dst, dst_rel = self._locate(parent or "", new)
        if not _present(src):
            raise NotFoundError("条目不存在", _MISSING_ITEM_STATUS)
        if old == new:
            return src_rel, dst_rel
        if _present(dst) and not (dst.exists() and src.exists() and os.path.samefile(src, dst)):
            raise ConflictError("目标名称已存在")
        try:
            src.rename(dst)
        except OSError as exc:
            raise IOFailureError(f"重命名失败: {exc}") from exc
        return src_rel, dst_rel

    def delete(self, parent: str | None, name: str) -> tuple[str, bool]:
        """递归删除 ``parent/name``，返回相对路径以及它是否为文件夹。"""
        target, rel = self._locate(parent or "", validate_name(name, "名称"))
        if not _present(target):
            raise NotFoundError("条目不存在", _MISSING_ITEM_STATUS)
        is_dir = target.is_dir() and not target.is_symlink()
        try:
            if is_dir:
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as exc:
            raise IOFailureError(f"删除失败: {exc}") from exc
        return rel, is_dir

    def write_file(
        self,
        parent: str | None,
        original_name: str,
        stream: BinaryIO,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> tuple[str, str]:
        """以原始文件名写入内容，同名文件直接覆盖（后写者生效），返回文件名与相对路径。

        先写入同目录下的临时文件再原子替换，读者不会看到写了一半的内容。
        """
        parent_rel = normalize_rel_path(parent)
        parent_dir = self._require_dir(parent_rel, "上传目标目录不存在")
        name = upload_name(original_name)
        target = parent_dir / name
        if target.is_dir():
            raise ConflictError("同名文件夹已存在")

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".upload-", dir=parent_dir)
        except OSError as exc:
            raise IOFailureError(f"上传失败: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(stream, out, chunk_size)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, target)
        except BaseException as exc:
            with suppress(FileNotFoundError):
                os.unlink(tmp_name)
            if isinstance(exc, OSError):
                raise IOFailureError(f"上传失败: {exc}") from exc
            raise
        return name, join_rel_path(parent_rel, name)
