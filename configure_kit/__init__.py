"""
configure_kit
-------------

SAP Cloud Integration 아티팩트 파라미터 설정/배포용 CLI 패키지.
하나 이상의 YAML 설정 파일에 선언된 패키지/아티팩트의 파라미터를 일괄 업데이트하고,
deploy 가 지정된 아티팩트는 설정 후 패키지 단위 병렬로 배포한다.
deployment prefix 로 같은 선언을 여러 환경(DEV_, QA_ ...)에 재사용할 수 있다.
"""

__all__ = [
    "config",
    "models",
    "orchestrator",
]
