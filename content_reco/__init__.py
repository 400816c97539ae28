# content_reco/__init__.py

"""
콘텐츠 추천 시스템 패키지 루트.

구성:
- vectorizer: TF-IDF + 카테고리/태그 one-hot 벡터, 가독성/참여도 지표
- profile: 방문자 프로필 (증분 업데이트, 90일 전체 재계산, 규칙 기반 세그먼트)
- strategies: content_based / collaborative / personalized / trending 스코어링
- service: 후보 선정 → 전략 병렬 실행 → 가중 합산 → 다양성 페널티 → 랭킹
- interactions: append-only 상호작용 로그
- metrics: Precision/Recall/NDCG/CTR 등 오프라인 지표
"""

MODEL_VERSION = "2.0"
