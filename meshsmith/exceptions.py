"""Custom exceptions for mesh merging operations"""


class MeshsmithError(Exception):
    """Base exception for meshsmith errors"""
    pass


class UnknownTargetError(MeshsmithError):
    """Decal created against a model id that is not registered"""
    pass


class NotFoundError(MeshsmithError):
    """Model or decal id not found"""
    pass


class NoGeometryError(MeshsmithError):
    """Merge attempted with no meshes"""
    pass


class InvalidAttributeError(MeshsmithError):
    """Geometry missing required attribute data (position)"""
    pass


class AssetLoadError(MeshsmithError):
    """Model decode failed (original error is chained as __cause__)"""
    pass


class ExportError(MeshsmithError):
    """Model encode failed or nothing to export"""
    pass


class ImageCodecError(MeshsmithError):
    """Image decode/encode failed"""
    pass
