'''Fields used so often that they deserve a name.'''
from .fields import Float, Int, Padding, Uint


Uint8 = Uint(8)
Uint16 = Uint(16)
Uint16LE = Uint(16, little_endian=True)
Uint32 = Uint(32)
Uint32LE = Uint(32, little_endian=True)
Uint64 = Uint(64)
Uint64LE = Uint(64, little_endian=True)

Int8 = Int(8)
Int16 = Int(16)
Int16LE = Int(16, little_endian=True)
Int32 = Int(32)
Int32LE = Int(32, little_endian=True)

Float32 = Float(32)
Float32LE = Float(32, little_endian=True)
Float64 = Float(64)
Float64LE = Float(64, little_endian=True)

# it takes no space and produces nothing
Pass = Padding()
