"""
녹음 모듈 패키지

구성:
- codec: TransmissionRecord ↔ 로그 레코드 바이너리 변환
- pipeline: 패킷 수신 → 큐 → 로그 파일 기록 (CapturePipeline)
- reader / player: 로그 순차 읽기와 재생
- summary: 로그 요약 통계
"""
