"""설정 모듈 패키지"""
