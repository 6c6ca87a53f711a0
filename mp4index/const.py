# Box type codes (ISO/IEC 14496-12), decoded as latin-1
BOX_FTYP = "ftyp"
BOX_MDAT = "mdat"
BOX_MOOV = "moov"
BOX_MVHD = "mvhd"
BOX_TRAK = "trak"
BOX_TKHD = "tkhd"
BOX_EDTS = "edts"
BOX_MDIA = "mdia"
BOX_MDHD = "mdhd"
BOX_HDLR = "hdlr"
BOX_MINF = "minf"
BOX_DINF = "dinf"
BOX_STBL = "stbl"
BOX_STSD = "stsd"
BOX_STTS = "stts"
BOX_CTTS = "ctts"
BOX_STSC = "stsc"
BOX_STSZ = "stsz"
BOX_STZ2 = "stz2"
BOX_STCO = "stco"
BOX_CO64 = "co64"
BOX_STSS = "stss"

# Boxes whose payload is a sequence of child boxes. Everything else is a leaf.
CONTAINER_BOXES = frozenset(
    {
        BOX_MOOV,
        BOX_TRAK,
        BOX_EDTS,
        BOX_MDIA,
        BOX_MINF,
        BOX_DINF,
        BOX_STBL,
    }
)

# Boxes allowed first in a file, used to sniff MP4 input
TOP_LEVEL_SIGNATURES = frozenset({BOX_FTYP, BOX_MOOV, BOX_MDAT})

# hdlr handler types
HANDLER_VIDEO = "vide"
HANDLER_AUDIO = "soun"

TRACK_KIND_AUDIO = "audio"
TRACK_KIND_VIDEO = "video"

HANDLER_KINDS = {
    HANDLER_AUDIO: TRACK_KIND_AUDIO,
    HANDLER_VIDEO: TRACK_KIND_VIDEO,
}

BOX_HEADER_SIZE = 8
LARGE_BOX_HEADER_SIZE = 16
