from datetime import UTC, datetime


class Datetime:
    """
    统一的时间处理工具类

    系统内部（数据库、邀请码生效窗口判断）统一使用带时区的 UTC 时间。
    """

    @staticmethod
    def now() -> datetime:
        """当前 UTC 时间（带时区），替代 datetime.now() / datetime.utcnow()"""
        return datetime.now(UTC)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """naive 时间视为 UTC（SQLite 读回的时间不带时区），aware 时间转换到 UTC"""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)
