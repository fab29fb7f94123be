"""
SRS 무전 송신 레코더 패키지

SimpleRadio Standalone 서버의 UDP 음성 패킷을 디코딩하여
송신 기록 로그 파일로 저장하고 재생/분석합니다.
"""

__version__ = "0.1.0"

# 호환성을 확인한 최소 SRS 서버 버전
MINIMUM_SERVER_VERSION = "2.3.2.0"
