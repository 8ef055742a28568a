"""
住所正規化ユーティリティ

住所の表記ゆれを吸収し、類似度計算と部分一致検索に使う「核心部分」
（都道府県を除いた市区町村以下）を取り出す
"""

import re
from typing import Optional

from .string_similarity import fold_width


class AddressNormalizer:
    """住所正規化クラス"""

    # 先頭の都道府県（行政区分は比較対象にしない）
    PREFECTURE_PATTERN = re.compile(r'^(東京都|北海道|(?:京都|大阪)府|.{2,3}県)')

    def __init__(self):
        # 丁目・番地・号の表記パターン（詳細なパターンから順に処理）
        self.block_patterns = [
            (r'(\d+)丁目(\d+)番地?(\d+)号?', r'\1-\2-\3'),
            (r'(\d+)丁目(\d+)番地?', r'\1-\2'),
            (r'(\d+)丁目(\d+)-(\d+)', r'\1-\2-\3'),  # 7丁目1-19のパターン
            (r'(\d+)丁目(\d+)号', r'\1-\2'),
            (r'(\d+)丁目(\d+)(?![番号])', r'\1-\2'),
            (r'(\d+)丁目(?!\d)', r'\1'),

            # 番地・号パターン（丁目なし）
            (r'(\d+)番地?(\d+)号?', r'\1-\2'),
            (r'(\d+)番地?(?!\d)', r'\1'),
        ]

    def normalize_chome_number(self, text: str) -> str:
        """「三丁目」「十二丁目」の漢数字を算用数字に変換"""
        basic_nums = {
            '一': 1, '二': 2, '三': 3, '四': 4, '五': 5,
            '六': 6, '七': 7, '八': 8, '九': 9
        }

        def convert(match):
            kanji = match.group(1)
            result = 0
            current = 0
            for char in kanji:
                if char == '十':
                    result += (current or 1) * 10
                    current = 0
                else:
                    current = basic_nums[char]
            return f"{result + current}丁目"

        return re.sub(r'([一二三四五六七八九十]+)丁目', convert, text)

    def normalize_block_number(self, text: str) -> str:
        """丁目・番地・号の表記をハイフン区切りに統一"""
        normalized = text
        for pattern, replacement in self.block_patterns:
            normalized = re.sub(pattern, replacement, normalized)
        return normalized

    def normalize(self, address: Optional[str]) -> str:
        """
        住所を正規化

        Args:
            address: 住所文字列

        Returns:
            幅・空白・ハイフン・番地表記を統一した住所
        """
        if not address:
            return ""

        normalized = fold_width(str(address))
        normalized = re.sub(r'\s+', '', normalized)

        # 数字の間の長音記号・各種ダッシュはハイフンとみなす
        normalized = re.sub(r'(?<=\d)[ー―‐−－](?=\d)', '-', normalized)

        normalized = self.normalize_chome_number(normalized)
        return self.normalize_block_number(normalized)

    def extract_core(self, address: Optional[str]) -> str:
        """都道府県を除いた住所の核心部分を抽出"""
        normalized = self.normalize(address)
        return self.PREFECTURE_PATTERN.sub('', normalized, count=1)


_default_normalizer = AddressNormalizer()


def extract_address_core(address: Optional[str]) -> str:
    """住所の核心部分（モジュール共通のインスタンスを使用）"""
    return _default_normalizer.extract_core(address)
