"""
annotator 패키지 초기화 모듈.

소스 파일의 특정 줄에 다는 주석을 공유 디렉터리에 저장하는 호스트.
구성 요소는 다음 하위 모듈에 정리되어 있다.
- codec: (collectionId, 경로) ↔ 파일명 가역 변환
- doc: 주석 문서 모델 및 legacy/current 형식 파서·직렬화
- persist: 주석 파일 읽기/저장/삭제/목록
- editing: 편집 중인 사용자 ledger
- models: 요청/응답 모델 (pydantic)
- hub: 요청 검증 및 라우팅
- protocol: 길이 접두사 프레이밍
- main: stdio 서버 진입점
"""

__all__ = [
    "codec",
    "doc",
    "editing",
    "hub",
    "main",
    "models",
    "persist",
    "protocol",
]
