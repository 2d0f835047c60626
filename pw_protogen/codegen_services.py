# Copyright 2024 The Pigweed Authors
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not
# use this file except in compliance with the License. You may obtain a copy of
# the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations under
# the License.
"""Generates service interfaces and clients.

Every service produces a typing.Protocol describing its methods. Depending on
the options, the file also gets one of three service flavors:

- default: a client that encodes requests and hands them to an Rpc transport.
  With a request context it adds batch accessors and per-request caching.
- web: a client for transports that take method descriptors and partial
  requests.
- controller: Client and Controller protocols for server frameworks, plus a
  class decorator marking the implemented methods.
"""

from typing import Iterable, NamedTuple

from google.protobuf import descriptor_pb2

from pw_protogen import batch, codegen_messages, fields, names
from pw_protogen.batch import BatchDetection, BatchMethod, BatchStatus
from pw_protogen.options import ClientImplOption, GenerationOptions
from pw_protogen.output_file import OutputFile
from pw_protogen.type_map import TypeMap

_MethodDescriptorProto = descriptor_pb2.MethodDescriptorProto
_ServiceDescriptorProto = descriptor_pb2.ServiceDescriptorProto


class _Method(NamedTuple):
    """A service method with its resolved Python names."""

    descriptor: _MethodDescriptorProto
    name: str
    request: str
    response: str
    detection: BatchDetection

    @property
    def client_streaming(self) -> bool:
        return self.descriptor.client_streaming

    @property
    def server_streaming(self) -> bool:
        return self.descriptor.server_streaming

    def is_streaming(self) -> bool:
        return self.client_streaming or self.server_streaming

    def batch_method(self) -> BatchMethod | None:
        if self.detection.status is BatchStatus.BATCH:
            return self.detection.batch_method
        return None

    def is_caching(self, options: GenerationOptions) -> bool:
        return (
            options.use_context
            and not self.is_streaming()
            and _is_get_method(self.descriptor.name)
        )


def _is_get_method(name: str) -> bool:
    prefix = batch.GET_PREFIX
    return (
        name.startswith(prefix)
        and len(name) > len(prefix)
        and name[len(prefix)].isupper()
    )


def _methods(
    type_map: TypeMap,
    file: descriptor_pb2.FileDescriptorProto,
    service: _ServiceDescriptorProto,
    options: GenerationOptions,
    output: OutputFile,
) -> list[_Method]:
    methods = []
    for method in service.method:
        request = type_map[method.input_type]
        response = type_map[method.output_type]
        methods.append(
            _Method(
                descriptor=method,
                name=batch.method_name(method.name, options),
                request=output.reference(request.module, request.type_name),
                response=output.reference(response.module, response.type_name),
                detection=batch.detect_batch_method(
                    type_map, file, service, method, options
                ),
            )
        )
    return methods


def _context_parameter(options: GenerationOptions, output: OutputFile) -> str:
    if options.use_context:
        return f'ctx: {output.runtime("dataloader")}.DataLoaders, '
    return ''


def _async_iterator(type_name: str, output: OutputFile) -> str:
    return f'{output.stdlib("typing")}.AsyncIterator[{type_name}]'


def _request_annotation(method: _Method, output: OutputFile) -> str:
    if method.client_streaming:
        return _async_iterator(method.request, output)
    return method.request


def _write_stub(output: OutputFile, signature: str) -> None:
    output.write_line(signature)
    with output.indent():
        output.write_line('...')


def _write_accessor_stub(
    batch_method: BatchMethod,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    key_type = codegen_messages.value_type(
        batch_method.input_field, options, output
    )
    value_type = codegen_messages.value_type(
        batch_method.output_element(), options, output
    )
    accessor = batch.method_name(batch_method.single_method_name, options)
    _write_stub(
        output,
        f'async def {accessor}'
        f'(self, {_context_parameter(options, output)}'
        f'{batch_method.key_name}: {key_type}) -> {value_type}:',
    )


def generate_service_interface(
    service: _ServiceDescriptorProto,
    methods: list[_Method],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Writes the Protocol listing the methods of a service."""
    typing_module = output.stdlib('typing')
    output.write_line(f'class {service.name}({typing_module}.Protocol):')

    with output.indent():
        for i, method in enumerate(methods):
            if i:
                output.write_line()
            _write_interface_method(method, options, output)

            batch_method = method.batch_method()
            if options.use_context and batch_method is not None:
                output.write_line()
                _write_accessor_stub(batch_method, options, output)


def _write_interface_method(
    method: _Method, options: GenerationOptions, output: OutputFile
) -> None:
    context = _context_parameter(options, output)

    if options.output_client_impl is ClientImplOption.WEB:
        typing_module = output.stdlib('typing')
        parameters = (
            f'request: {method.request} | '
            f'{typing_module}.Mapping[str, {typing_module}.Any], '
            f'metadata: {typing_module}.Mapping[str, str] | None = None'
        )
    else:
        parameters = f'request: {_request_annotation(method, output)}'

    if method.server_streaming:
        _write_stub(
            output,
            f'def {method.name}(self, {context}{parameters}) -> '
            f'{_async_iterator(method.response, output)}:',
        )
    else:
        _write_stub(
            output,
            f'async def {method.name}(self, {context}{parameters}) -> '
            f'{method.response}:',
        )


def _write_rpc_protocol(options: GenerationOptions, output: OutputFile) -> None:
    """Writes the transport Protocol used by the default clients."""
    context = _context_parameter(options, output)

    output.write_line(f'class Rpc({output.stdlib("typing")}.Protocol):')
    with output.indent():
        _write_stub(
            output,
            f'async def request(self, {context}service: str, method: str, '
            'data: bytes) -> bytes:',
        )
        output.write_line()
        _write_stub(
            output,
            f'def stream(self, {context}service: str, method: str, '
            f'data: {_async_iterator("bytes", output)}) -> '
            f'{_async_iterator("bytes", output)}:',
        )


def _write_web_protocol(output: OutputFile) -> None:
    """Writes the transport Protocol used by the web clients."""
    typing_module = output.stdlib('typing')

    output.write_line(f'class WebRpc({typing_module}.Protocol):')
    with output.indent():
        _write_stub(
            output,
            'async def unary(self, '
            f'method: {output.runtime("rpc")}.UnaryMethodDefinition, '
            f'request: {typing_module}.Any, '
            f'metadata: {typing_module}.Mapping[str, str] | None) -> '
            f'{typing_module}.Any:',
        )


def _write_regular_method(
    service_name: str, method: _Method, use_ctx: str, output: OutputFile
) -> None:
    """Writes a client method that calls the transport directly."""
    rpc_module = output.runtime('rpc')
    call_args = f"{use_ctx}'{service_name}', '{method.descriptor.name}'"

    if method.client_streaming:
        output.write_line(
            f'data = {rpc_module}.encode_stream(request, '
            f'lambda message: {method.request}.encode(message).finish())'
        )
    else:
        output.write_line(
            f'data = {method.request}.encode(request).finish()'
        )

    if method.server_streaming:
        if not method.client_streaming:
            output.write_line(f'data = {rpc_module}.single(data)')
        output.write_line(
            f'async for response in self.rpc.stream({call_args}, data):'
        )
        with output.indent():
            output.write_line(f'yield {method.response}.decode(response)')
        return

    if method.client_streaming:
        output.write_line(
            f'response = await {rpc_module}.first_response('
            f'self.rpc.stream({call_args}, data))'
        )
    else:
        output.write_line(
            f'response = await self.rpc.request({call_args}, data)'
        )
    output.write_line(f'return {method.response}.decode(response)')


def _write_data_loader(
    unique_identifier: str,
    key: str,
    output: OutputFile,
    cache_key_fn: str = '',
) -> None:
    """Writes the get-or-create of a context's loader and the load call."""
    dataloader_module = output.runtime('dataloader')
    extra = f', cache_key_fn={cache_key_fn}' if cache_key_fn else ''

    output.write_line('loader = ctx.get_data_loader(')
    with output.indent():
        output.write_line(f"'{unique_identifier}',")
        output.write_line(
            f'lambda: {dataloader_module}.DataLoader(load_batch, '
            f'options=ctx.rpc_data_loader_options{extra}),'
        )
    output.write_line(')')
    output.write_line(f'return await loader.load({key})')


def _write_batch_accessor(
    batch_method: BatchMethod,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Writes GetX(ctx, key), which loads one key through BatchGetXs."""
    key_type = codegen_messages.value_type(
        batch_method.input_field, options, output
    )
    value_type = codegen_messages.value_type(
        batch_method.output_element(), options, output
    )
    request = output.reference(
        batch_method.request.module, batch_method.request.type_name
    )
    batch_call = batch.method_name(batch_method.method.name, options)
    accessor = batch.method_name(batch_method.single_method_name, options)

    output.write_line(
        f'async def {accessor}(self, ctx: '
        f'{output.runtime("dataloader")}.DataLoaders, '
        f'{batch_method.key_name}: {key_type}) -> {value_type}:'
    )
    with output.indent():
        output.write_line(
            f'async def load_batch(keys: list[{key_type}]) -> '
            f'list[{value_type}]:'
        )
        with output.indent():
            output.write_line(
                f'response = await self.{batch_call}(ctx, '
                f'{request}({batch_method.input_field_name}=list(keys)))'
            )
            if batch_method.map_type:
                output.write_line(
                    f'return [response.{batch_method.output_field_name}'
                    '.get(key) for key in keys]'
                )
            else:
                output.write_line(
                    f'return response.{batch_method.output_field_name}'
                )
        output.write_line()
        _write_data_loader(
            batch_method.unique_identifier, batch_method.key_name, output
        )


def _write_caching_method(
    service_name: str, method: _Method, output: OutputFile
) -> None:
    """Writes a GetX method whose identical requests share one call."""
    output.write_line(
        f'async def {method.name}(self, ctx: '
        f'{output.runtime("dataloader")}.DataLoaders, '
        f'request: {method.request}) -> {method.response}:'
    )
    with output.indent():
        output.write_line(
            f'async def call(request: {method.request}) -> {method.response}:'
        )
        with output.indent():
            _write_regular_method(service_name, method, 'ctx, ', output)
        output.write_line()
        output.write_line(
            f'async def load_batch(requests: list[{method.request}]) -> '
            f'list[{method.response}]:'
        )
        with output.indent():
            output.write_line(
                f'return await {output.stdlib("asyncio")}.gather('
                '*(call(request) for request in requests))'
            )
        output.write_line()
        _write_data_loader(
            f'{service_name}.{method.descriptor.name}',
            'request',
            output,
            cache_key_fn=(
                f'lambda request: {method.request}.encode(request).finish()'
            ),
        )


def generate_client_impl(
    service: _ServiceDescriptorProto,
    service_name: str,
    methods: list[_Method],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Writes <Service>ClientImpl, which sends requests through an Rpc."""
    context = _context_parameter(options, output)
    use_ctx = 'ctx, ' if options.use_context else ''

    output.write_line(f'class {service.name}ClientImpl({service.name}):')
    with output.indent():
        output.write_line('def __init__(self, rpc: Rpc) -> None:')
        with output.indent():
            output.write_line('self.rpc = rpc')

        for method in methods:
            batch_method = method.batch_method()
            if options.use_context and batch_method is not None:
                output.write_line()
                _write_batch_accessor(batch_method, options, output)

            output.write_line()
            if method.is_caching(options):
                _write_caching_method(service_name, method, output)
                continue

            if method.server_streaming:
                returns = _async_iterator(method.response, output)
            else:
                returns = method.response
            output.write_line(
                f'async def {method.name}(self, {context}request: '
                f'{_request_annotation(method, output)}) -> {returns}:'
            )
            with output.indent():
                _write_regular_method(service_name, method, use_ctx, output)


def _descriptor_constant(service: _ServiceDescriptorProto) -> str:
    return names.snake_case(service.name).upper() + '_DESC'


def _method_descriptor_constant(
    service: _ServiceDescriptorProto, method: _Method
) -> str:
    return (
        f'{names.snake_case(service.name).upper()}_'
        f'{names.snake_case(method.descriptor.name).upper()}_DESC'
    )


def generate_web_descriptors(
    service: _ServiceDescriptorProto,
    service_name: str,
    methods: list[_Method],
    output: OutputFile,
) -> None:
    """Writes the service and unary method descriptors of a service."""
    rpc_module = output.runtime('rpc')
    service_constant = _descriptor_constant(service)

    output.write_line(
        f'{service_constant} = {rpc_module}.ServiceDefinition('
        f"service_name='{service_name}')"
    )
    for method in methods:
        if method.is_streaming():
            continue
        output.write_line(
            f'{_method_descriptor_constant(service, method)} = '
            f'{rpc_module}.UnaryMethodDefinition('
        )
        with output.indent():
            output.write_line(f"method_name='{method.descriptor.name}',")
            output.write_line(f'service={service_constant},')
            output.write_line('request_stream=False,')
            output.write_line('response_stream=False,')
            output.write_line(
                f'serialize=lambda message: '
                f'{method.request}.encode(message).finish(),'
            )
            output.write_line(
                f'deserialize=lambda data: {method.response}.decode(data),'
            )
        output.write_line(')')


def generate_web_client(
    service: _ServiceDescriptorProto,
    methods: list[_Method],
    output: OutputFile,
) -> None:
    """Writes <Service>ClientImpl, which sends requests through a WebRpc."""
    typing_module = output.stdlib('typing')

    output.write_line(f'class {service.name}ClientImpl({service.name}):')
    with output.indent():
        output.write_line('def __init__(self, rpc: WebRpc) -> None:')
        with output.indent():
            output.write_line('self.rpc = rpc')

        for method in methods:
            output.write_line()
            request = (
                f'request: {method.request} | '
                f'{typing_module}.Mapping[str, {typing_module}.Any], '
                f'metadata: {typing_module}.Mapping[str, str] | None = None'
            )
            if method.server_streaming:
                returns = _async_iterator(method.response, output)
            else:
                returns = method.response
            output.write_line(
                f'async def {method.name}(self, {request}) -> {returns}:'
            )
            with output.indent():
                if method.is_streaming():
                    output.write_line(
                        "raise NotImplementedError('The web client does not "
                        "support streaming methods')"
                    )
                    continue
                output.write_line(
                    'return await self.rpc.unary('
                    f'{_method_descriptor_constant(service, method)}, '
                    f'{method.request}.from_partial(request), metadata)'
                )


def _controller_returns(
    method: _Method, options: GenerationOptions, output: OutputFile
) -> str:
    typing_module = output.stdlib('typing')
    response = method.response

    if fields.is_empty_type(method.descriptor.output_type):
        return f'None | {typing_module}.Awaitable[None]'
    if options.return_observable or method.server_streaming:
        return _async_iterator(response, output)
    return (
        f'{response} | {typing_module}.Awaitable[{response}] | '
        f'{_async_iterator(response, output)}'
    )


def generate_controller(
    service: _ServiceDescriptorProto,
    methods: list[_Method],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Writes the Client and Controller protocols and the method decorator."""
    typing_module = output.stdlib('typing')
    context = _context_parameter(options, output)
    service_constant = names.snake_case(service.name).upper() + '_NAME'

    output.write_line(f"{service_constant} = '{service.name}'")
    output.write_line()
    output.write_line()

    output.write_line(f'class {service.name}Client({typing_module}.Protocol):')
    with output.indent():
        for i, method in enumerate(methods):
            if i:
                output.write_line()
            _write_stub(
                output,
                f'def {method.name}(self, {context}request: '
                f'{_request_annotation(method, output)}) -> '
                f'{_async_iterator(method.response, output)}:',
            )

            batch_method = method.batch_method()
            if options.use_context and batch_method is not None:
                output.write_line()
                _write_accessor_stub(batch_method, options, output)

    output.write_line()
    output.write_line()
    output.write_line(
        f'class {service.name}Controller({typing_module}.Protocol):'
    )
    with output.indent():
        for i, method in enumerate(methods):
            if i:
                output.write_line()
            _write_stub(
                output,
                f'def {method.name}(self, {context}request: '
                f'{_request_annotation(method, output)}) -> '
                f'{_controller_returns(method, options, output)}:',
            )

            batch_method = method.batch_method()
            if options.use_context and batch_method is not None:
                output.write_line()
                _write_accessor_stub(batch_method, options, output)

    output.write_line()
    output.write_line()
    _write_controller_decorator(service, methods, output)


def _tuple(items: Iterable[str]) -> str:
    """A tuple literal of string constants."""
    quoted = [f"'{item}'" for item in items]
    if len(quoted) == 1:
        return f'({quoted[0]},)'
    return f'({", ".join(quoted)})'


def _write_controller_decorator(
    service: _ServiceDescriptorProto,
    methods: list[_Method],
    output: OutputFile,
) -> None:
    unary = _tuple(m.name for m in methods if not m.client_streaming)
    streaming = _tuple(m.name for m in methods if m.client_streaming)

    output.write_line(
        f'def {names.snake_case(service.name)}_controller_methods(cls):'
    )
    with output.indent():
        output.write_line(
            f'"""Marks the methods of cls that implement {service.name}."""'
        )
        output.write_line(f'cls._grpc_methods = {unary}')
        output.write_line(f'cls._grpc_stream_methods = {streaming}')
        output.write_line('for name in cls._grpc_methods:')
        with output.indent():
            output.write_line('method = getattr(cls, name, None)')
            output.write_line('if method is not None:')
            with output.indent():
                output.write_line(
                    f"method.grpc_method = ('{service.name}', name)"
                )
        output.write_line('for name in cls._grpc_stream_methods:')
        with output.indent():
            output.write_line('method = getattr(cls, name, None)')
            output.write_line('if method is not None:')
            with output.indent():
                output.write_line(
                    f"method.grpc_stream_method = ('{service.name}', name)"
                )
        output.write_line('return cls')


def generate_services(
    type_map: TypeMap,
    file: descriptor_pb2.FileDescriptorProto,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Writes the interfaces and clients of every service in a file."""
    if not file.service:
        return

    if options.controller and file.package:
        package_constant = (
            names.module_alias(file.package).upper() + '_PACKAGE_NAME'
        )
        output.write_line(f"{package_constant} = '{file.package}'")
        output.write_line()
        output.write_line()

    if options.output_client_impl is ClientImplOption.DEFAULT:
        _write_rpc_protocol(options, output)
        output.write_line()
        output.write_line()
    elif options.output_client_impl is ClientImplOption.WEB:
        _write_web_protocol(output)
        output.write_line()
        output.write_line()

    for i, service in enumerate(file.service):
        if i:
            output.write_line()
            output.write_line()

        service_name = batch.service_full_name(file, service)
        methods = _methods(type_map, file, service, options, output)

        if options.controller:
            generate_controller(service, methods, options, output)
            continue

        generate_service_interface(service, methods, options, output)

        match options.output_client_impl:
            case ClientImplOption.DEFAULT:
                output.write_line()
                output.write_line()
                generate_client_impl(
                    service, service_name, methods, options, output
                )
            case ClientImplOption.WEB:
                output.write_line()
                output.write_line()
                generate_web_descriptors(
                    service, service_name, methods, output
                )
                output.write_line()
                output.write_line()
                generate_web_client(service, methods, output)
