"""
カスタム例外クラスの定義
"""


class MergeError(Exception):
    """統合・統合取り消しの検証エラー（書き込みは一切行われない）"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
