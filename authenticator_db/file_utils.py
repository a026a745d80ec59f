"""
file_utils.py — Tiện ích filesystem cho database.

- restrict_access_to_owner: chmod 700 cho thư mục chứa database.
- get_filesystem_info_for_error_string: gom thông tin stat để đính kèm vào StoreOpenFailure.
"""

import os
import stat


def restrict_access_to_owner(path: str) -> None:
    """
    Chỉ cho owner đọc/ghi/duyệt path (0o700).

    Raises:
        OSError: nếu chmod thất bại (caller quyết định có bỏ qua hay không)
    """
    os.chmod(path, stat.S_IRWXU)


def get_stat_string(path: str) -> str:
    st = os.stat(path)
    return (
        f"mode: {stat.S_IMODE(st.st_mode):o} (octal), uid: {st.st_uid}, gid: {st.st_gid}, "
        f"size: {st.st_size}, mtime: {int(st.st_mtime)}"
    )


def get_filesystem_info_for_error_string(database_path: str) -> str:
    """
    Trả về thông tin stat của thư mục dữ liệu, thư mục database và file database.

    Mỗi path một dòng; path nào stat lỗi thì ghi lại exception thay vì raise.
    """
    database_path = os.path.abspath(database_path)
    database_dir = os.path.dirname(database_path)
    paths = [os.path.dirname(database_dir), database_dir, database_path]
    uid = os.getuid() if hasattr(os, "getuid") else -1

    lines = []
    for path in paths:
        try:
            lines.append(f"{path} stat (my UID: {uid}): {get_stat_string(path)}")
        except OSError as e:
            lines.append(f"{path} stat threw an exception: {e}")
    return "\n".join(lines)
