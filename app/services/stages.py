from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Checkpoint:
    progress: int
    message: str
    duration: int  # nominal ms until the next checkpoint


@dataclass(frozen=True)
class FailureInjection:
    stage: int  # index into PROCESSING_STAGES
    message: str


# delay between submission and the first checkpoint
INITIAL_DELAY = 1000

PROCESSING_STAGES: Tuple[Checkpoint, ...] = (
    Checkpoint(10, "正在解析视频地址", 1000),
    Checkpoint(30, "正在下载视频资源", 1500),
    Checkpoint(50, "正在去除视频水印", 2000),
    Checkpoint(70, "正在生成视频封面", 1500),
    Checkpoint(90, "正在生成视频版本", 1000),
    Checkpoint(100, "视频处理完成", 0),
)

FAILURE_INJECTIONS: Tuple[FailureInjection, ...] = (
    FailureInjection(1, "视频资源下载失败"),
    FailureInjection(2, "视频水印去除失败，素材格式不受支持"),
    FailureInjection(3, "视频封面生成失败，素材分辨率过低"),
)

SUBMITTED_MESSAGE = "任务已提交，等待处理"
STARTED_MESSAGE = "任务开始处理"
SUCCESS_MESSAGE = "视频处理成功"


def failure_message(stage: int) -> str:
    for injection in FAILURE_INJECTIONS:
        if injection.stage == stage:
            return injection.message
    raise ValueError(f"No failure injection at stage {stage}")
