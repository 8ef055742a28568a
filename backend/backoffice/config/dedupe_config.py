"""
重複検出・統合関連の設定値
環境変数またはデフォルト値から設定を読み込む
"""

import os
from typing import Dict, Any

# 候補の最大件数
TOP_N = 5

# 顧客スコアの重み（合計1.0）
CUSTOMER_WEIGHTS = {
    'phone': 0.4,     # 電話番号の完全一致
    'name': 0.5,      # 氏名の類似度
    'contact': 0.1,   # メールアドレスまたはLINE IDの完全一致
}

# 建物スコアの重み（合計1.0）
BUILDING_WEIGHTS = {
    'name': 0.4,      # 建物名の類似度
    'address': 0.35,  # 住所（都道府県除く）の類似度
    'location': 0.25, # 座標の近さ
}

# 近接判定の距離（メートル）
NEARBY_RADIUS_METERS = 100
# 候補が0件のときの広域検索
FALLBACK_RADIUS_METERS = 500
FALLBACK_LIMIT = 5

# 住所の部分一致検索に必要な最小文字数
MIN_ADDRESS_CORE_LENGTH = 5

# 統合時のテキスト連結区切り
NOTES_SEPARATOR = "\n---\n"
TEXT_SEPARATOR = "\n"

# 取り消し用スナップショットの形式バージョン
SNAPSHOT_VERSION = 1


class DedupeConfig:
    """重複検出の設定クラス（距離・件数のみ環境変数で上書き可能）"""

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """環境変数またはデフォルト値から設定を取得"""
        return {
            'top_n': int(os.getenv('DEDUPE_TOP_N', TOP_N)),
            'nearby_radius_m': float(os.getenv('DEDUPE_NEARBY_RADIUS_M', NEARBY_RADIUS_METERS)),
            'fallback_radius_m': float(os.getenv('DEDUPE_FALLBACK_RADIUS_M', FALLBACK_RADIUS_METERS)),
            'fallback_limit': int(os.getenv('DEDUPE_FALLBACK_LIMIT', FALLBACK_LIMIT)),
        }
