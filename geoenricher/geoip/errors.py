"""GeoIP 데이터베이스 관리와 조회에서 사용하는 예외 계층."""

from __future__ import annotations


class GeoIpError(Exception):
    """모든 GeoIP 예외의 기본 클래스."""


class ConfigurationError(GeoIpError):
    """시작 시 데이터베이스 파일이 없거나 읽을 수 없다."""


class ReloadError(GeoIpError):
    """데이터베이스 파일을 열거나 파싱하지 못했다."""


class QueryError(GeoIpError):
    """단일 주소 조회가 실패했다."""


class DatabaseClosedError(QueryError):
    """이미 닫힌 핸들로 조회를 시도했다."""


class ParseError(GeoIpError, ValueError):
    """값이 유효한 IP 리터럴이 아니다."""
