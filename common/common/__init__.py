"""deposit-service 공용 모듈 (로깅, 요청 추적 미들웨어)."""
