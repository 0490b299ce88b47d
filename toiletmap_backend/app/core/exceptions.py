# app/core/exceptions.py


class LooConflictError(Exception):
    """이미 존재하는 ID로 화장실을 생성하려 할 때 발생합니다."""

    def __init__(self, loo_id: str):
        super().__init__(f"ID가 {loo_id}인 화장실이 이미 존재합니다.")
        self.loo_id = loo_id


class RetryableWriteError(Exception):
    """
    쓰기 트랜잭션이 저장소 수준에서 실패했을 때 발생합니다.
    동시 생성 경합(같은 신규 ID에 대한 두 upsert)도 여기에 포함됩니다.
    서비스는 내부적으로 재시도하지 않으며, 재시도 여부는 호출자가 결정합니다.
    """

    def __init__(self, loo_id: str, cause: Exception):
        super().__init__(f"화장실 {loo_id} 저장에 실패했습니다. 잠시 후 다시 시도해주세요.")
        self.loo_id = loo_id
        self.cause = cause
