"""
Advanced VFX operations.

Each of these builds a small pipeline of nodes downstream of a source node
and reports the created node names (PipelineResult).
"""

from typing import Literal, Optional

from pydantic import Field

from nukeflow.schemas import OperationSpec

from .common import (
    HEX_COLOR,
    OperationArgs,
    OperationResult,
    PipelineResult,
    Scalar,
    output_name_field,
)


class SetupCameraTrackingArgs(OperationArgs):
    sourceName: str = Field(description="Name of the source node containing footage to track")
    trackingPoints: int = Field(10, ge=1, description="Number of tracking points to create")
    createScene: bool = Field(False, description="Whether to create a 3D scene after tracking")
    solveMethod: Literal["MatchMove", "3DEqualizer", "PFTrack"] = "MatchMove"
    exportPath: Optional[str] = Field(None, description="Optional path to export tracking data")


class CameraTrackingResult(PipelineResult):
    tracker: str
    trackingPoints: int
    solveMethod: str
    exportPath: Optional[str] = None


DeepOperation = Literal["DeepRecolor", "DeepMerge", "DeepToImage", "DeepFromImage"]


class SetupDeepCompositingArgs(OperationArgs):
    sourceName: str = Field(description="Name of the source deep image node")
    outputName: Optional[str] = output_name_field()
    operations: list[DeepOperation] = Field(
        default_factory=lambda: ["DeepRecolor", "DeepToImage"],
        min_length=1,
        description="Deep operations to include in the pipeline",
    )


class BatchProcessArgs(OperationArgs):
    scriptPath: str = Field(description="Path to the processing script")
    inputFiles: list[str] = Field(min_length=1, description="Input file paths")
    outputDir: str = Field(description="Output directory for processed files")
    frameRange: Optional[str] = Field(None, description="Optional frame range to process")
    fileType: str = Field("exr", description="Output file type (e.g., 'exr', 'dpx')")
    threads: int = Field(4, ge=1, description="Number of threads to use for processing")


class BatchProcessResult(OperationResult):
    scriptPath: str
    processed: int
    outputs: list[str]
    threads: int
    frames: Optional[list[int]] = None


class SetupMachineLearningArgs(OperationArgs):
    modelPath: str = Field(description="Path to the CopyCat model")
    inputNode: str = Field(description="Name of the input node")
    outputNode: Optional[str] = Field(None, description="Optional name for the output node")
    gpuEnabled: bool = True
    inferenceParams: dict[str, Scalar] = Field(default_factory=dict)


class SetupKeyingArgs(OperationArgs):
    sourceName: str = Field(description="Name of the source node containing footage to key")
    screenColor: Literal["green", "blue", "red", "custom"] = "green"
    customColor: str = Field("#00FF00", pattern=HEX_COLOR)
    keyerType: Literal["Primatte", "Keylight", "IBK", "UltraKeyer"] = "Keylight"
    despill: bool = True
    edgeRefinement: bool = True
    outputName: Optional[str] = output_name_field()


class KeyingResult(PipelineResult):
    keyer: str
    screenColor: str


class SetupMotionBlurArgs(OperationArgs):
    sourceName: str
    vectorName: Optional[str] = Field(None, description="Optional name of an existing motion vector node")
    vectorMethod: Literal["VectorGenerator", "OpticalFlow", "External"] = "VectorGenerator"
    amount: float = Field(1.0, ge=0)
    samples: int = Field(10, ge=1)
    shutterAngle: float = Field(180, gt=0, le=360)
    outputName: Optional[str] = output_name_field()


class CreateBasicCompArgs(OperationArgs):
    foregroundPath: str
    backgroundPath: str
    outputPath: str
    includeGrade: bool = True
    includeLensEffects: bool = False
    includeGrain: bool = True
    colorSpace: str = "ACES"


class BasicCompResult(PipelineResult):
    foreground: str
    background: str
    write: str
    colorSpace: str


class SetupStereoRigArgs(OperationArgs):
    sourceName: str
    interocularDistance: float = Field(6.5, gt=0, description="Eye separation in cm")
    convergenceDistance: float = Field(200, gt=0, description="Convergence distance in cm")
    outputName: Optional[str] = output_name_field()


class SetupParticleSystemArgs(OperationArgs):
    emitterType: Literal["point", "sphere", "box", "geometry"]
    particleCount: int = Field(1000, ge=1)
    lifetime: int = Field(100, ge=1, description="Particle lifetime in frames")
    velocityControl: bool = True
    forceNodes: list[Literal["gravity", "wind", "turbulence", "custom"]] = Field(
        default_factory=lambda: ["gravity"]
    )
    outputName: Optional[str] = output_name_field()


class SetupLensDistortionArgs(OperationArgs):
    sourceName: str
    distortionModel: Literal["3DE4", "NukeX", "LensDistortion"] = "LensDistortion"
    k1: float = 0.1
    k2: float = 0.05
    undistort: bool = True
    outputName: Optional[str] = output_name_field()


class SetupGrainManagementArgs(OperationArgs):
    sourceName: str
    operation: Literal["add", "match", "remove"]
    grainType: Literal["Kodak5248", "Kodak5279", "KodakTri-X", "custom"] = "Kodak5248"
    grainSize: float = Field(1.0, gt=0)
    grainAmount: float = Field(0.5, ge=0)
    outputName: Optional[str] = output_name_field()


def _vfx(name: str, args, result, description: str) -> OperationSpec:
    return OperationSpec(
        name=name,
        input_schema=args,
        result_schema=result,
        description=description,
        category="vfx",
    )


VFX_OPERATIONS = [
    _vfx("setupCameraTracking", SetupCameraTrackingArgs, CameraTrackingResult,
         "Set up camera tracking with optional 3D scene creation"),
    _vfx("setupDeepCompositing", SetupDeepCompositingArgs, PipelineResult,
         "Set up a deep compositing pipeline"),
    _vfx("batchProcess", BatchProcessArgs, BatchProcessResult,
         "Batch process multiple files using a processing script"),
    _vfx("setupMachineLearning", SetupMachineLearningArgs, PipelineResult,
         "Set up a machine learning pipeline using CopyCat"),
    _vfx("setupKeying", SetupKeyingArgs, KeyingResult,
         "Set up a keying pipeline for green/blue screen footage"),
    _vfx("setupMotionBlur", SetupMotionBlurArgs, PipelineResult,
         "Set up a motion blur pipeline"),
    _vfx("createBasicComp", CreateBasicCompArgs, BasicCompResult,
         "Create a basic compositing setup with foreground and background"),
    _vfx("setupStereoRig", SetupStereoRigArgs, PipelineResult,
         "Set up a stereo 3D rig"),
    _vfx("setupParticleSystem", SetupParticleSystemArgs, PipelineResult,
         "Set up a particle system"),
    _vfx("setupLensDistortion", SetupLensDistortionArgs, PipelineResult,
         "Set up lens distortion/undistortion"),
    _vfx("setupGrainManagement", SetupGrainManagementArgs, PipelineResult,
         "Set up film grain management (add, match, or remove grain)"),
]
