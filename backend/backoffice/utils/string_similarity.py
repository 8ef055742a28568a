"""
文字列の正規化と類似度計算

全角・半角の表記ゆれを吸収したうえで、編集距離（レーベンシュタイン距離）から
0.0〜1.0の類似度を求める。副作用のない純粋関数のみを提供する。
"""

import re
from typing import Callable, Optional

import jaconv
from rapidfuzz.distance import Levenshtein

# 電話番号の区切り文字（ハイフン・括弧・長音記号・空白）
PHONE_SEPARATOR_PATTERN = re.compile(r'[\s\-‐－―ー\(\)（）]')
WHITESPACE_PATTERN = re.compile(r'\s+')


def fold_width(text: str) -> str:
    """全角英数字を半角に、半角カナを全角に揃える"""
    folded = jaconv.z2h(text, kana=False, ascii=True, digit=True)
    return jaconv.h2z(folded, kana=True, ascii=False, digit=False)


def normalize_text(text: Optional[str]) -> str:
    """
    汎用の正規化（幅の統一・小文字化・空白除去）

    Args:
        text: 正規化する文字列

    Returns:
        正規化された文字列（Noneの場合は空文字）
    """
    if not text:
        return ""
    normalized = fold_width(str(text)).casefold()
    return WHITESPACE_PATTERN.sub('', normalized)


def normalize_person_name(name: Optional[str]) -> str:
    """顧客名の正規化（「田中 太郎」と「田中太郎」を同一視）"""
    return normalize_text(name)


def normalize_building_name(name: Optional[str]) -> str:
    """建物名の正規化（「ＡＢＣマンション」と「abcマンション」を同一視）"""
    return normalize_text(name)


def normalize_phone(phone: Optional[str]) -> str:
    """電話番号から区切り文字を除去（「090-1234-5678」→「09012345678」）"""
    if not phone:
        return ""
    folded = jaconv.z2h(str(phone), kana=False, ascii=True, digit=True)
    return PHONE_SEPARATOR_PATTERN.sub('', folded)


def levenshtein_distance(a: str, b: str) -> int:
    """挿入・削除・置換をそれぞれコスト1とする編集距離"""
    return Levenshtein.distance(a, b)


def similarity(
    a: Optional[str],
    b: Optional[str],
    normalizer: Callable[[Optional[str]], str] = normalize_text
) -> float:
    """
    2つの文字列の類似度を計算

    正規化後に完全一致なら1.0、どちらかが空なら0.0、
    それ以外は 1 - 編集距離 / 長い方の文字数。

    Args:
        a: 比較する文字列
        b: 比較する文字列
        normalizer: 項目に応じた正規化関数

    Returns:
        0.0〜1.0の類似度
    """
    norm_a = normalizer(a)
    norm_b = normalizer(b)

    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    max_len = max(len(norm_a), len(norm_b))
    return 1.0 - levenshtein_distance(norm_a, norm_b) / max_len
