class TranscodeException(Exception):
    '''Base class to extend in order to throw exception in transcode.

    It takes the message and, optionally, the chain of the components that
    caused the exception: the aggregates append the name (or position) of
    the child that failed while the exception unwinds, so the innermost
    component comes first.
    '''

    def __init__(self, message='', chain=None):
        self.message = message
        self.chain = chain if chain is not None else []
        super().__init__(message)

    @property
    def path(self) -> str:
        path = ''
        for component in reversed(self.chain):
            if isinstance(component, int):
                path += '[%d]' % component
            else:
                path += ('.%s' % component) if path else component
        return path

    def __str__(self):
        path = self.path
        if not path:
            return self.message

        return f'{path}: {self.message}'


class ConfigurationError(TranscodeException):
    '''The definition of a format is not valid.'''
    pass


class MissingFieldError(TranscodeException):
    pass


class InsufficientDataError(TranscodeException):
    '''There is not enough data, either in the source document or in the buffer.'''
    pass


class LengthMismatchError(TranscodeException):
    pass


class OverrunError(TranscodeException):
    pass


class UnknownDiscriminantError(TranscodeException):
    pass


class AlignmentError(TranscodeException):
    '''Raised by the fields that can only work on whole bytes.'''
    pass


class SerializationError(TranscodeException):
    '''The codec is not able to represent the value with the given width.'''
    pass
